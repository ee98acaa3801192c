import base64
import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, select, text
from .config import settings
from .utils.errors import SystemException, exception_summary

logger = logging.getLogger(__name__)

# 针对 SQLite 做一些“更像生产”的默认优化：
# - busy_timeout：降低并发写入下的 “database is locked”
# - WAL：提升并发读写能力（webhook 后台任务 + 前端查询并行）
_is_sqlite = str(settings.database_url or "").startswith("sqlite")
_connect_args = {"timeout": 30} if _is_sqlite else {}

# Create async engine (supports both SQLite and PostgreSQL)
engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    future=True,
    connect_args=_connect_args,
)

# 只有 SQLite 才需要 PRAGMA；PostgreSQL 会忽略
# 注意：计数/关联的一致性全部由事务维护，不依赖外键级联
if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db():
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """把一组写操作包成一个事务：成功提交，任何异常都回滚。

    - 业务异常（ParamError / BusinessFail 等）原样抛出；
    - SQLAlchemyError 记录日志后转换为 SystemException，不向调用方泄露内部细节。
    """
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("[DB] Transaction failed: %s", exception_summary(e))
        raise SystemException() from e
    except BaseException:
        await session.rollback()
        raise


async def init_db() -> list[str]:
    """Initialize database tables；返回本次补齐的配置 key"""
    # 确保所有模型都已被导入，从而注册到 Base.metadata
    # （否则单独运行 init_db.py 时可能出现“没有建表”的情况）
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _ensure_schema(conn)

    async with AsyncSessionLocal() as session:
        return await seed_sys_config(session)


async def _ensure_schema(conn) -> None:
    """补齐列表查询常用的索引（IF NOT EXISTS 同时兼容 SQLite / PostgreSQL）。"""

    # 列表默认排序：置顶优先，再按创建时间倒序
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_memo_status_priority_created ON t_memo (status, priority DESC, created DESC)")
    )
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_memo_user_created ON t_memo (user_id, created DESC)")
    )

    # liked / commented / mentioned 过滤走 EXISTS 子查询
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_relation_user_memo ON t_user_memo_relation (user_id, memo_id, fav_type)")
    )
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_comment_user_memo ON t_comment (user_id, memo_id)")
    )
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_comment_mention_user ON t_comment_mention (user_id, memo_id)")
    )


# 启动时补齐的运行期配置（key -> default_value）
SYS_CONFIG_DEFAULTS: dict[str, str] = {
    "OPEN_REGISTER": "true",
    "WEBSITE_TITLE": "MBlog",
    "OPEN_COMMENT": "false",
    "OPEN_LIKE": "false",
    "MEMO_MAX_LENGTH": "300",
    "INDEX_WIDTH": "50rem",
    "USER_MODEL": "SINGLE",
    "CUSTOM_CSS": "",
    "CUSTOM_JAVASCRIPT": "",
    "THUMBNAIL_SIZE": "100,100",
    "ANONYMOUS_COMMENT": "false",
    "COMMENT_APPROVED": "true",
    "DOMAIN": "",
    "CORS_DOMAIN_LIST": "",
    "WEB_HOOK_URL": "",
    "WEB_HOOK_TOKEN": "",
    "STORAGE_TYPE": "LOCAL",
}


def _generate_webhook_token() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


async def seed_sys_config(session: AsyncSession) -> list[str]:
    """插入缺失的配置行；WEB_HOOK_TOKEN 为空时生成一个随机值。返回新插入的 key。"""
    from .models import SysConfig

    result = await session.execute(select(SysConfig))
    existing = {row.key: row for row in result.scalars().all()}

    added: list[str] = []
    for key, default_value in SYS_CONFIG_DEFAULTS.items():
        if key not in existing:
            added.append(key)
            row = SysConfig(key=key, value=None, default_value=default_value)
            session.add(row)
            existing[key] = row

    hook_token = existing["WEB_HOOK_TOKEN"]
    if not (hook_token.value or "").strip():
        hook_token.value = _generate_webhook_token()
        logger.info("[STARTUP] Generated WEB_HOOK_TOKEN")

    await session.commit()
    if added:
        logger.info("[STARTUP] Seeded sys config keys: %s", ", ".join(added))
    return added
