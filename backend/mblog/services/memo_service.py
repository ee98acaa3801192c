from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import Comment, CommentMention, Memo, MemoTag, Resource, Tag, UserMemoRelation
from ..models.memo import VISIBILITIES, VISIBILITY_PUBLIC
from ..models.user_memo_relation import FAV_TYPE_LIKE
from ..schemas import MemoRelationRequest, SaveMemoRequest, SetPriorityRequest, UpdateMemoRequest
from ..utils.dates import utcnow
from ..utils.errors import BusinessFail, ParamError
from . import sys_config
from .identity import Principal
from .tag_set import TagSet, parse_content
from .webhook import schedule_memo_webhook

logger = logging.getLogger(__name__)


RELATION_ADD = "ADD"
RELATION_REMOVE = "REMOVE"


def _check_content_and_resources(content: str | None, resource_ids: list[str]) -> None:
    if not (content or "").strip() and not resource_ids:
        raise ParamError("content and resources both empty")


def _normalize_visibility(value: str | None) -> str:
    visibility = (value or "").strip() or VISIBILITY_PUBLIC
    if visibility not in VISIBILITIES:
        raise ParamError(f"invalid visibility: {visibility}")
    return visibility


def _normalize_resource_ids(values: Iterable[str] | None) -> list[str]:
    ids: list[str] = []
    for v in values or ():
        s = (v or "").strip()
        if s and s not in ids:
            ids.append(s)
    return ids


def _can_manage(principal: Principal, owner_id: int) -> bool:
    return principal.is_admin or principal.user_id == owner_id


class MemoService:
    """memo 写操作：标签计数、资源挂载、点赞计数都在同一事务里维护。

    约定：
    - 标签计数按 memo 所有者维护（管理员改/删别人的 memo 时也一样）；
    - 计数递减一律带 `>= 1` 条件，永远不会变成负数；
    - 新增 memo 的 webhook 在事务提交之后才交给后台任务。
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # 标签 / 资源的一致性维护（只在事务内调用）
    # ------------------------------------------------------------------

    async def _sync_tags_on_save(self, user_id: int, tags: TagSet) -> list[int]:
        """已存在的标签 memo_count + 1，不存在的新建（memo_count = 1）；返回标签 id。"""
        names = tags.names()
        if not names:
            return []

        now = utcnow()
        result = await self.db.execute(
            select(Tag.id, Tag.name).where(Tag.user_id == user_id, Tag.name.in_(names))
        )
        existing = {name: tag_id for tag_id, name in result.all()}

        if existing:
            await self.db.execute(
                update(Tag)
                .where(Tag.id.in_(list(existing.values())))
                .values(memo_count=Tag.memo_count + 1, updated=now)
                .execution_options(synchronize_session=False)
            )

        tag_ids: list[int] = []
        for name in names:
            tag_id = existing.get(name)
            if tag_id is None:
                tag = Tag(name=name, user_id=user_id, memo_count=1, created=now, updated=now)
                self.db.add(tag)
                await self.db.flush()
                tag_id = tag.id
            tag_ids.append(tag_id)
        return tag_ids

    async def _memo_tag_ids(self, memo_id: int) -> list[int]:
        result = await self.db.execute(select(MemoTag.tag_id).where(MemoTag.memo_id == memo_id))
        return [int(x) for x in result.scalars().all()]

    async def _decrement_tags(self, tag_ids: list[int]) -> None:
        if not tag_ids:
            return
        await self.db.execute(
            update(Tag)
            .where(Tag.id.in_(tag_ids), Tag.memo_count >= 1)
            .values(memo_count=Tag.memo_count - 1, updated=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def _replace_memberships(self, memo_id: int, tag_ids: list[int]) -> None:
        await self.db.execute(delete(MemoTag).where(MemoTag.memo_id == memo_id))
        if tag_ids:
            await self.db.execute(
                insert(MemoTag), [{"memo_id": memo_id, "tag_id": tag_id} for tag_id in tag_ids]
            )

    async def _attach_resources(self, memo_id: int, public_ids: list[str]) -> None:
        """只挂载尚未归属任何 memo（memo_id = 0）的资源。"""
        if not public_ids:
            return
        await self.db.execute(
            update(Resource)
            .where(Resource.memo_id == 0, Resource.public_id.in_(public_ids))
            .values(memo_id=memo_id, updated=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def _detach_resources(self, memo_id: int) -> None:
        await self.db.execute(
            update(Resource)
            .where(Resource.memo_id == memo_id)
            .values(memo_id=0, updated=utcnow())
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # 对外操作
    # ------------------------------------------------------------------

    async def save(self, principal: Principal, req: SaveMemoRequest) -> int:
        resource_ids = _normalize_resource_ids(req.resource_id_list)
        _check_content_and_resources(req.content, resource_ids)

        tags, content = parse_content(req.content)
        visibility = _normalize_visibility(req.visibility)
        now = utcnow()

        async with atomic(self.db):
            memo = Memo(
                user_id=principal.user_id,
                content=content,
                tags=tags.format(),
                visibility=visibility,
                enable_comment=1 if req.enable_comment else 0,
                source=req.source or principal.device.lower(),
                created=now,
                updated=now,
            )
            self.db.add(memo)
            await self.db.flush()

            tag_ids = await self._sync_tags_on_save(principal.user_id, tags)
            await self._replace_memberships(memo.id, tag_ids)
            await self._attach_resources(memo.id, resource_ids)

        memo_id = int(memo.id)
        logger.info("[MEMO] Created memo_id=%s user_id=%s tags=%s", memo_id, principal.user_id, len(tags))

        if visibility == VISIBILITY_PUBLIC:
            schedule_memo_webhook(memo_id)
        return memo_id

    async def update(self, principal: Principal, req: UpdateMemoRequest) -> None:
        """更新正文/标签/资源。

        标签计数：先对新标签全部 +1（含未变化的），再对旧标签全部 -1，
        未变化的标签一加一减，净变化为 0。
        """
        if req.id is None:
            raise ParamError("id is required")

        memo = await self.db.get(Memo, req.id)
        if memo is None:
            raise BusinessFail("memo not found")
        if not _can_manage(principal, memo.user_id):
            raise BusinessFail("no permission")

        resource_ids = _normalize_resource_ids(req.resource_id_list)
        _check_content_and_resources(req.content, resource_ids)

        new_tags, content = parse_content(req.content)
        owner_id = memo.user_id

        async with atomic(self.db):
            memo.content = content
            memo.tags = new_tags.format()
            memo.visibility = _normalize_visibility(req.visibility or memo.visibility)
            if req.enable_comment is not None:
                memo.enable_comment = 1 if req.enable_comment else 0
            memo.updated = utcnow()

            old_tag_ids = await self._memo_tag_ids(memo.id)
            new_tag_ids = await self._sync_tags_on_save(owner_id, new_tags)
            await self._decrement_tags(old_tag_ids)
            await self._replace_memberships(memo.id, new_tag_ids)

            await self._detach_resources(memo.id)
            await self._attach_resources(memo.id, resource_ids)

        logger.info("[MEMO] Updated memo_id=%s by user_id=%s", memo.id, principal.user_id)

    async def remove(self, principal: Principal, memo_id: int) -> None:
        """删除 memo：标签 -1、删资源、删 memo、删评论。不存在时静默成功。"""
        memo = await self.db.get(Memo, memo_id)
        if memo is None:
            return
        if not _can_manage(principal, memo.user_id):
            raise BusinessFail("no permission")

        async with atomic(self.db):
            tag_ids = await self._memo_tag_ids(memo_id)
            await self._decrement_tags(tag_ids)
            await self.db.execute(delete(MemoTag).where(MemoTag.memo_id == memo_id))
            await self.db.execute(delete(Resource).where(Resource.memo_id == memo_id))
            await self.db.execute(delete(CommentMention).where(CommentMention.memo_id == memo_id))
            await self.db.execute(delete(Comment).where(Comment.memo_id == memo_id))
            await self.db.delete(memo)

        logger.info("[MEMO] Removed memo_id=%s by user_id=%s", memo_id, principal.user_id)

    async def set_priority(self, principal: Principal, req: SetPriorityRequest) -> None:
        """置顶：priority = 全表最大值 + 1；取消置顶：priority = 0。"""
        memo = await self.db.get(Memo, req.id)
        if memo is None:
            return
        if not _can_manage(principal, memo.user_id):
            raise BusinessFail("no permission")

        async with atomic(self.db):
            if req.set:
                current_max = await self.db.scalar(select(func.max(Memo.priority)))
                memo.priority = int(current_max or 0) + 1
            else:
                memo.priority = 0

    async def relation(self, principal: Principal, req: MemoRelationRequest) -> None:
        """点赞 / 取消点赞（受 OPEN_LIKE 开关控制）。"""
        if not await sys_config.get_boolean(self.db, sys_config.OPEN_LIKE):
            raise BusinessFail("likes disabled")

        fav_type = (req.fav_type or FAV_TYPE_LIKE).strip().upper()
        action = (req.type or "").strip().upper()
        me = principal.user_id

        if action == RELATION_ADD:
            exists_count = await self.db.scalar(
                select(func.count())
                .select_from(UserMemoRelation)
                .where(
                    UserMemoRelation.memo_id == req.memo_id,
                    UserMemoRelation.user_id == me,
                    UserMemoRelation.fav_type == fav_type,
                )
            )
            if int(exists_count or 0) > 0:
                raise BusinessFail("already liked")

            async with atomic(self.db):
                now = utcnow()
                self.db.add(
                    UserMemoRelation(
                        memo_id=req.memo_id, user_id=me, fav_type=fav_type, created=now, updated=now
                    )
                )
                await self.db.execute(
                    update(Memo)
                    .where(Memo.id == req.memo_id)
                    .values(like_count=Memo.like_count + 1)
                    .execution_options(synchronize_session=False)
                )
            return

        if action == RELATION_REMOVE:
            async with atomic(self.db):
                result = await self.db.execute(
                    delete(UserMemoRelation).where(
                        UserMemoRelation.memo_id == req.memo_id,
                        UserMemoRelation.user_id == me,
                        UserMemoRelation.fav_type == fav_type,
                    )
                )
                if (result.rowcount or 0) > 0:
                    await self.db.execute(
                        update(Memo)
                        .where(Memo.id == req.memo_id, Memo.like_count >= 1)
                        .values(like_count=Memo.like_count - 1)
                        .execution_options(synchronize_session=False)
                    )
            return

        raise ParamError(f"invalid relation type: {req.type}")
