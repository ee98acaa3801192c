from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import Memo, MemoTag, Tag, User
from ..models.user import ROLE_ADMIN
from ..schemas import SaveTagItem, TagDTO
from ..utils.dates import utcnow
from ..utils.errors import BusinessFail, ParamError
from .identity import Principal
from .tag_set import TagSet

logger = logging.getLogger(__name__)


class TagService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tags(self, principal: Principal) -> list[TagDTO]:
        result = await self.db.execute(
            select(Tag)
            .where(Tag.user_id == principal.user_id)
            .order_by(Tag.memo_count.desc(), Tag.name.asc())
        )
        return [TagDTO.model_validate(t) for t in result.scalars().all()]

    async def top10(self, principal: Principal | None) -> list[TagDTO]:
        """当前用户（匿名时为管理员）引用最多的 10 个标签。"""
        if principal is not None:
            user_id = principal.user_id
        else:
            user_id = await self.db.scalar(
                select(User.id).where(User.role == ROLE_ADMIN).order_by(User.id.asc()).limit(1)
            )
            if user_id is None:
                return []

        result = await self.db.execute(
            select(Tag)
            .where(Tag.user_id == user_id)
            .order_by(Tag.memo_count.desc(), Tag.id.asc())
            .limit(10)
        )
        return [TagDTO.model_validate(t) for t in result.scalars().all()]

    async def remove(self, principal: Principal, tag_id: int) -> None:
        """只能删除自己的、且 memo_count 为 0 的标签；否则静默忽略。"""
        async with atomic(self.db):
            await self.db.execute(
                delete(Tag).where(
                    Tag.id == tag_id,
                    Tag.user_id == principal.user_id,
                    Tag.memo_count == 0,
                )
            )

    async def save(self, principal: Principal, items: list[SaveTagItem]) -> None:
        """重命名标签，同时改写引用它的 memo.tags 并刷新 memo.updated。"""
        if not items:
            raise ParamError("tags are required")

        async with atomic(self.db):
            for item in items:
                new_name = (item.name or "").strip()
                if not new_name:
                    raise ParamError("tag name is required")

                tag = await self.db.scalar(
                    select(Tag).where(Tag.id == item.id, Tag.user_id == principal.user_id)
                )
                if tag is None:
                    raise BusinessFail("tag not found")
                old_name = tag.name
                if old_name == new_name:
                    continue

                clash = await self.db.scalar(
                    select(Tag.id).where(Tag.user_id == principal.user_id, Tag.name == new_name)
                )
                if clash is not None:
                    raise BusinessFail("tag name exists")

                now = utcnow()
                tag.name = new_name
                tag.updated = now

                result = await self.db.execute(
                    select(Memo)
                    .join(MemoTag, MemoTag.memo_id == Memo.id)
                    .where(MemoTag.tag_id == tag.id)
                )
                for memo in result.scalars().all():
                    rendered = TagSet.from_string(memo.tags)
                    if rendered.rename(old_name, new_name):
                        memo.tags = rendered.format()
                    memo.updated = now

                await self.db.flush()
                logger.info("[TAG] Renamed tag_id=%s user_id=%s", tag.id, principal.user_id)
