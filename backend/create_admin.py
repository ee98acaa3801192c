"""一次性创建管理员账号

用法（在 backend/ 目录下）：
    python create_admin.py --username admin --password "StrongPass123!" [--email admin@example.com]

用户名已存在时，直接把该用户升级为管理员（不修改密码）。
"""
import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mblog.database import AsyncSessionLocal, init_db
from mblog.models import User
from mblog.models.user import ROLE_ADMIN
from mblog.schemas import RegisterUserRequest
from mblog.services import UserService
from mblog.utils.dates import utcnow


async def create_admin(
    session: AsyncSession, *, username: str, password: str, email: str | None = None
) -> int:
    existing = await session.scalar(select(User).where(User.username == username))
    if existing is not None:
        existing.role = ROLE_ADMIN
        existing.updated = utcnow()
        await session.commit()
        print(f"User exists (id={existing.id}), promoted to admin.")
        return int(existing.id)

    user_id = await UserService(session).register(
        RegisterUserRequest(username=username, password=password, email=email),
        role=ROLE_ADMIN,
        check_open=False,
    )
    print(f"Admin created: id={user_id}, username={username}")
    return user_id


async def main(args: argparse.Namespace) -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        await create_admin(session, username=args.username, password=args.password, email=args.email)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--email", required=False)
    asyncio.run(main(parser.parse_args()))
