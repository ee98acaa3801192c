from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import DevToken
from ..models.dev_token import DEFAULT_TOKEN_NAME
from ..schemas import DevTokenDTO
from ..utils.errors import BusinessFail
from ..utils.token import DEVICE_API, issue_token
from .identity import Principal

logger = logging.getLogger(__name__)


class DevTokenService:
    """每个用户一个 API token；重置/禁用后旧 token 立即失效。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _current(self, user_id: int) -> DevToken | None:
        return await self.db.scalar(
            select(DevToken).where(DevToken.user_id == user_id).order_by(DevToken.id.asc()).limit(1)
        )

    async def get(self, principal: Principal) -> DevTokenDTO | None:
        row = await self._current(principal.user_id)
        return DevTokenDTO.model_validate(row) if row is not None else None

    async def enable(self, principal: Principal) -> DevTokenDTO:
        row = await self._current(principal.user_id)
        if row is not None:
            return DevTokenDTO.model_validate(row)

        async with atomic(self.db):
            row = DevToken(
                name=DEFAULT_TOKEN_NAME,
                token=issue_token(principal.user_id, DEVICE_API),
                user_id=principal.user_id,
            )
            self.db.add(row)
            await self.db.flush()

        logger.info("[TOKEN] Enabled api token user_id=%s", principal.user_id)
        return DevTokenDTO.model_validate(row)

    async def reset(self, principal: Principal, token_id: int) -> DevTokenDTO:
        row = await self.db.scalar(
            select(DevToken).where(DevToken.id == token_id, DevToken.user_id == principal.user_id)
        )
        if row is None:
            raise BusinessFail("token not found")

        async with atomic(self.db):
            row.token = issue_token(principal.user_id, DEVICE_API)

        logger.info("[TOKEN] Reset api token user_id=%s", principal.user_id)
        return DevTokenDTO.model_validate(row)

    async def disable(self, principal: Principal) -> None:
        async with atomic(self.db):
            await self.db.execute(delete(DevToken).where(DevToken.user_id == principal.user_id))
        logger.info("[TOKEN] Disabled api token user_id=%s", principal.user_id)
