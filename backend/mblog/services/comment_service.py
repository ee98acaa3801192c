from __future__ import annotations

import logging
import re

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import Comment, CommentMention, Memo, User
from ..models.comment import ANONYMOUS_USER_ID
from ..schemas import CommentDTO, PageResult, QueryCommentRequest, SaveCommentRequest
from ..utils.dates import as_aware, utcnow
from ..utils.errors import BusinessFail, ParamError
from . import sys_config
from .identity import Principal
from .memo_query import normalize_page, total_pages

logger = logging.getLogger(__name__)


# `@名字` 后面必须跟空白才算一次提及
_MENTION_RE = re.compile(r"(@.*?)\s+")


def parse_mention_names(content: str) -> list[str]:
    names: list[str] = []
    for raw in _MENTION_RE.findall(content or ""):
        name = raw[1:].strip()
        if name and name not in names:
            names.append(name)
    return names


class CommentService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _resolve_mentions(self, content: str) -> list[User]:
        names = parse_mention_names(content)
        if not names:
            return []
        result = await self.db.execute(select(User).where(User.display_name.in_(names)))
        by_name = {u.display_name: u for u in result.scalars().all()}
        return [by_name[n] for n in names if n in by_name]

    async def _get_memo_for_moderation(self, principal: Principal, memo_id: int) -> Memo | None:
        memo = await self.db.get(Memo, memo_id)
        owner_id = memo.user_id if memo is not None else None
        if not (principal.is_admin or (owner_id is not None and owner_id == principal.user_id)):
            raise BusinessFail("no permission")
        return memo

    async def add(self, principal: Principal | None, req: SaveCommentRequest) -> int:
        """新增评论，并在同一事务里把 memo.comment_count + 1。"""
        content = (req.content or "").strip()
        if not content:
            raise ParamError("content is required")

        memo = await self.db.get(Memo, req.memo_id)
        if memo is None:
            raise BusinessFail("memo not found")

        open_comment = await sys_config.get_boolean(self.db, sys_config.OPEN_COMMENT)
        if not open_comment or int(memo.enable_comment or 0) != 1:
            raise BusinessFail("comments disabled")

        now = utcnow()
        comment = Comment(memo_id=memo.id, content=content, created=now, updated=now)

        if principal is not None:
            user = await self.db.get(User, principal.user_id)
            if user is None:
                raise BusinessFail("user not found")
            comment.user_id = user.id
            comment.user_name = user.display_name or user.username
            comment.approved = 1
        else:
            if not await sys_config.get_boolean(self.db, sys_config.ANONYMOUS_COMMENT):
                raise BusinessFail("anonymous comments disabled")
            username = (req.username or "").strip()
            if not username:
                raise ParamError("username is required")
            need_approval = await sys_config.get_boolean(self.db, sys_config.COMMENT_APPROVED)
            comment.user_id = ANONYMOUS_USER_ID
            comment.user_name = username
            comment.email = req.email
            comment.link = req.link
            comment.approved = 0 if need_approval else 1

        mentioned = await self._resolve_mentions(content)
        # ids 为空时也写空串，便于按 "%#id,%" 查询
        comment.mentioned = ",".join(u.display_name for u in mentioned) or None
        comment.mentioned_user_id = "".join(f"#{u.id}," for u in mentioned)

        async with atomic(self.db):
            await self.db.execute(
                update(Memo)
                .where(Memo.id == memo.id)
                .values(comment_count=Memo.comment_count + 1)
                .execution_options(synchronize_session=False)
            )
            self.db.add(comment)
            await self.db.flush()
            for user in mentioned:
                self.db.add(CommentMention(comment_id=comment.id, memo_id=memo.id, user_id=user.id))

        logger.info(
            "[COMMENT] Added comment_id=%s memo_id=%s anonymous=%s",
            comment.id,
            memo.id,
            principal is None,
        )
        return int(comment.id)

    async def remove(self, principal: Principal, comment_id: int) -> None:
        """删除评论（memo 所有者或管理员）。memo.comment_count 不回退。"""
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise BusinessFail("comment not found")
        await self._get_memo_for_moderation(principal, comment.memo_id)

        async with atomic(self.db):
            await self.db.execute(delete(CommentMention).where(CommentMention.comment_id == comment_id))
            await self.db.delete(comment)

    async def approve_one(self, principal: Principal, comment_id: int) -> None:
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise BusinessFail("comment not found")
        await self._get_memo_for_moderation(principal, comment.memo_id)

        async with atomic(self.db):
            await self.db.execute(
                update(Comment)
                .where(Comment.id == comment_id, Comment.user_id < 0)
                .values(approved=1, updated=utcnow())
                .execution_options(synchronize_session=False)
            )

    async def approve_memo(self, principal: Principal, memo_id: int) -> None:
        """通过某条 memo 下所有待审核的匿名评论。"""
        memo = await self._get_memo_for_moderation(principal, memo_id)
        if memo is None:
            raise BusinessFail("memo not found")

        async with atomic(self.db):
            await self.db.execute(
                update(Comment)
                .where(Comment.memo_id == memo_id, Comment.user_id < 0, Comment.approved == 0)
                .values(approved=1, updated=utcnow())
                .execution_options(synchronize_session=False)
            )

    async def query(
        self, principal: Principal | None, req: QueryCommentRequest
    ) -> PageResult[CommentDTO]:
        """评论分页：非 memo 所有者/管理员只看登录用户评论与已审核的匿名评论。"""
        page, size = normalize_page(req.page, req.size)

        memo = await self.db.get(Memo, req.memo_id)
        if memo is None:
            return PageResult[CommentDTO]()

        where_clauses = [Comment.memo_id == req.memo_id]
        privileged = principal is not None and (principal.is_admin or principal.user_id == memo.user_id)
        if not privileged:
            where_clauses.append(
                or_(Comment.user_id > 0, and_(Comment.user_id < 0, Comment.approved == 1))
            )

        total = int(
            await self.db.scalar(select(func.count()).select_from(Comment).where(*where_clauses)) or 0
        )
        result = await self.db.execute(
            select(Comment)
            .where(*where_clauses)
            .order_by(Comment.created.asc(), Comment.id.asc())
            .offset((page - 1) * size)
            .limit(size)
        )

        items: list[CommentDTO] = []
        for c in result.scalars().all():
            dto = CommentDTO.model_validate(c)
            dto.created = as_aware(c.created)
            dto.updated = as_aware(c.updated)
            items.append(dto)
        return PageResult[CommentDTO](items=items, total=total, total_page=total_pages(total, size))
