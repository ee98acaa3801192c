from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import SysConfig
from ..utils.errors import SystemException, exception_summary

logger = logging.getLogger(__name__)


OPEN_REGISTER = "OPEN_REGISTER"
WEBSITE_TITLE = "WEBSITE_TITLE"
OPEN_COMMENT = "OPEN_COMMENT"
OPEN_LIKE = "OPEN_LIKE"
MEMO_MAX_LENGTH = "MEMO_MAX_LENGTH"
INDEX_WIDTH = "INDEX_WIDTH"
USER_MODEL = "USER_MODEL"
CUSTOM_CSS = "CUSTOM_CSS"
CUSTOM_JAVASCRIPT = "CUSTOM_JAVASCRIPT"
THUMBNAIL_SIZE = "THUMBNAIL_SIZE"
ANONYMOUS_COMMENT = "ANONYMOUS_COMMENT"
COMMENT_APPROVED = "COMMENT_APPROVED"
DOMAIN = "DOMAIN"
WEB_HOOK_URL = "WEB_HOOK_URL"
WEB_HOOK_TOKEN = "WEB_HOOK_TOKEN"

# 前端可见的配置项（不需要登录）
FRONT_CONFIG_KEYS = (
    OPEN_REGISTER,
    WEBSITE_TITLE,
    OPEN_COMMENT,
    OPEN_LIKE,
    MEMO_MAX_LENGTH,
    INDEX_WIDTH,
    USER_MODEL,
    CUSTOM_CSS,
    CUSTOM_JAVASCRIPT,
    THUMBNAIL_SIZE,
    ANONYMOUS_COMMENT,
    COMMENT_APPROVED,
)


def _effective(row: SysConfig | None) -> str:
    if row is None:
        return ""
    value = row.value or ""
    return value if value else (row.default_value or "")


async def get_string(db: AsyncSession, key: str) -> str:
    """读取配置：value 非空取 value，否则取 default_value；不存在返回空串。"""
    try:
        row = await db.get(SysConfig, key)
    except SQLAlchemyError as e:
        logger.exception("[CONFIG] Failed to read key=%s: %s", key, exception_summary(e))
        raise SystemException() from e
    return _effective(row)


async def get_boolean(db: AsyncSession, key: str) -> bool:
    return (await get_string(db, key)).lower() == "true"


async def get_all(db: AsyncSession) -> list[SysConfig]:
    result = await db.execute(select(SysConfig).order_by(SysConfig.key.asc()))
    return list(result.scalars().all())


async def get_front_config(db: AsyncSession) -> dict[str, str]:
    result = await db.execute(select(SysConfig).where(SysConfig.key.in_(FRONT_CONFIG_KEYS)))
    rows = {row.key: row for row in result.scalars().all()}
    return {key: _effective(rows.get(key)) for key in FRONT_CONFIG_KEYS if key in rows}


async def save(db: AsyncSession, items: dict[str, str | None]) -> None:
    """批量写入配置值；未知 key 会新建一行。"""
    async with atomic(db):
        for key, value in items.items():
            row = await db.get(SysConfig, key)
            if row is None:
                db.add(SysConfig(key=key, value=value, default_value=""))
            else:
                row.value = value
