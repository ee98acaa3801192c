from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..services.identity import (
    Principal,
    extract_token,
    resolve_optional_principal,
    resolve_principal,
)


def request_token(request: Request) -> str | None:
    """从配置的请求头（默认 `token`）读取凭证。"""
    return extract_token(request.headers.get(settings.token_header))


async def require_principal(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Principal:
    return await resolve_principal(db, request_token(request))


async def optional_principal(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Principal | None:
    return await resolve_optional_principal(db, request_token(request))
