from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DevToken, User
from ..models.user import ROLE_ADMIN
from ..utils.errors import ApiTokenInvalid, NeedLogin, SystemException, exception_summary
from ..utils.token import DEVICE_API, claim_device, claim_user_id, decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """已校验的调用方身份。"""

    user_id: int
    role: str | None
    device: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def extract_token(raw: str | None) -> str | None:
    """请求头里的 token 去首尾空白；空串视为没有携带。"""
    if raw is None:
        return None
    token = raw.strip()
    return token or None


async def resolve_principal(db: AsyncSession, token: str | None) -> Principal:
    """把 token 解析为 Principal。

    - 签名不对/缺少用户 id：NeedLogin
    - API 设备 token 必须与 t_dev_token 里当前有效的 token 一致，否则 ApiTokenInvalid
    - 读库失败：SystemException
    - exp 不校验（token 不会过期，API token 靠 t_dev_token 撤销）
    """
    if not token:
        raise NeedLogin()

    payload = decode_token(token)
    if payload is None:
        raise NeedLogin()

    user_id = claim_user_id(payload)
    if user_id is None:
        raise NeedLogin()

    try:
        role = await db.scalar(select(User.role).where(User.id == user_id))
    except SQLAlchemyError as e:
        logger.exception("[AUTH] Failed to load role user_id=%s: %s", user_id, exception_summary(e))
        raise SystemException() from e

    device = claim_device(payload)
    if device == DEVICE_API:
        try:
            issued = await db.scalar(
                select(DevToken.id).where(DevToken.token == token, DevToken.user_id == user_id).limit(1)
            )
        except SQLAlchemyError as e:
            logger.exception("[AUTH] Failed to load dev token user_id=%s: %s", user_id, exception_summary(e))
            raise SystemException() from e
        if issued is None:
            logger.info("[AUTH] Rejected revoked api token user_id=%s", user_id)
            raise ApiTokenInvalid()

    return Principal(user_id=user_id, role=role, device=device)


async def resolve_optional_principal(db: AsyncSession, token: str | None) -> Principal | None:
    """可选登录：NeedLogin / ApiTokenInvalid 视为匿名，SystemException 照常抛出。"""
    try:
        return await resolve_principal(db, token)
    except (NeedLogin, ApiTokenInvalid):
        return None
