"""建表并补齐 t_sys_config 默认配置（可重复执行）

用法（在 backend/ 目录下）：
    python init_db.py
"""
import asyncio

from mblog.config import settings
from mblog.database import init_db


async def main() -> None:
    print(f"Initializing database: {settings.database_url}")
    added = await init_db()
    if added:
        print(f"Seeded {len(added)} sys config keys: {', '.join(added)}")
    else:
        print("Sys config already complete, nothing seeded.")
    print("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(main())
