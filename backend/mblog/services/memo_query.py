from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ..config import settings
from ..models import Comment, CommentMention, Memo, MemoTag, Resource, Tag, User, UserMemoRelation
from ..models.memo import (
    STATUS_NORMAL,
    VISIBILITY_PRIVATE,
    VISIBILITY_PROTECT,
    VISIBILITY_PUBLIC,
)
from ..models.resource import STORAGE_LOCAL
from ..models.user import ROLE_ADMIN
from ..models.user_memo_relation import FAV_TYPE_LIKE
from ..schemas import (
    ListMemoRequest,
    MemoDTO,
    MemoStatisticsDTO,
    MemoStatisticsItem,
    PageResult,
    ResourceDTO,
)
from ..utils.dates import as_aware, parse_datetime_param, utcnow
from ..utils.errors import BusinessFail, ParamError, SystemException, exception_summary
from . import sys_config
from .identity import Principal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 谓词：每种条件一个小类型，统一编译成 SQLAlchemy 表达式（参数化，不拼接 SQL）
# ---------------------------------------------------------------------------


class Predicate:
    def compile(self) -> ColumnElement[bool]:
        raise NotImplementedError


@dataclass(frozen=True)
class Equals(Predicate):
    column: Any
    value: Any

    def compile(self) -> ColumnElement[bool]:
        return self.column == self.value


@dataclass(frozen=True)
class Like(Predicate):
    column: Any
    pattern: str

    def compile(self) -> ColumnElement[bool]:
        return self.column.like(self.pattern, escape="\\")


@dataclass(frozen=True)
class Between(Predicate):
    column: Any
    lower: Any
    upper: Any

    def compile(self) -> ColumnElement[bool]:
        return self.column.between(self.lower, self.upper)


@dataclass(frozen=True)
class In(Predicate):
    column: Any
    values: tuple[Any, ...]

    def compile(self) -> ColumnElement[bool]:
        return self.column.in_(self.values)


@dataclass(frozen=True)
class Exists(Predicate):
    """关联子查询（替代原先的多表 join，不会产生重复行）。"""

    subquery: Any

    def compile(self) -> ColumnElement[bool]:
        return exists(self.subquery)


@dataclass(frozen=True)
class AllOf(Predicate):
    parts: tuple[Predicate, ...]

    def compile(self) -> ColumnElement[bool]:
        return and_(*[p.compile() for p in self.parts])


@dataclass(frozen=True)
class AnyOf(Predicate):
    parts: tuple[Predicate, ...]

    def compile(self) -> ColumnElement[bool]:
        return or_(*[p.compile() for p in self.parts])


def compile_all(predicates: Sequence[Predicate]) -> list[ColumnElement[bool]]:
    return [p.compile() for p in predicates]


def _escape_like_term(term: str) -> str:
    """转义 LIKE 通配符，让搜索词按字面匹配（ESCAPE '\\'）。"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def visibility_predicate(principal: Principal | None) -> Predicate:
    """匿名只看 PUBLIC；登录用户额外能看 PROTECT 与自己的 PRIVATE（管理员也不例外）。"""
    if principal is None:
        return Equals(Memo.visibility, VISIBILITY_PUBLIC)
    return AnyOf(
        (
            In(Memo.visibility, (VISIBILITY_PUBLIC, VISIBILITY_PROTECT)),
            AllOf(
                (
                    Equals(Memo.visibility, VISIBILITY_PRIVATE),
                    Equals(Memo.user_id, principal.user_id),
                )
            ),
        )
    )


def build_list_predicates(req: ListMemoRequest, principal: Principal | None) -> list[Predicate]:
    """把列表请求 + 调用方身份翻译成谓词列表（count 与分页共用同一份）。"""
    predicates: list[Predicate] = [Equals(Memo.status, STATUS_NORMAL)]

    search = req.search or ""
    if search:
        predicates.append(Like(Memo.content, f"%{_escape_like_term(search)}%"))

    # begin / end 必须同时提供且都能解析才生效
    if req.begin is not None and req.end is not None:
        begin = parse_datetime_param(req.begin)
        end = parse_datetime_param(req.end)
        if begin is not None and end is not None:
            predicates.append(Between(Memo.created, begin, end))

    predicates.append(visibility_predicate(principal))

    if req.user_id is not None and req.user_id > 0:
        predicates.append(Equals(Memo.user_id, req.user_id))

    if principal is not None:
        me = principal.user_id
        if req.liked:
            predicates.append(
                Exists(
                    select(UserMemoRelation.id).where(
                        UserMemoRelation.memo_id == Memo.id,
                        UserMemoRelation.user_id == me,
                        UserMemoRelation.fav_type == FAV_TYPE_LIKE,
                    )
                )
            )
        if req.commented:
            if req.mentioned:
                predicates.append(
                    Exists(
                        select(CommentMention.comment_id).where(
                            CommentMention.memo_id == Memo.id,
                            CommentMention.user_id == me,
                        )
                    )
                )
            else:
                predicates.append(
                    Exists(
                        select(Comment.id).where(
                            Comment.memo_id == Memo.id,
                            Comment.user_id == me,
                        )
                    )
                )

    tag = (req.tag or "").strip()
    if tag:
        predicates.append(
            Exists(
                select(MemoTag.memo_id)
                .join(Tag, Tag.id == MemoTag.tag_id)
                .where(MemoTag.memo_id == Memo.id, Tag.name == tag)
            )
        )

    visibility = (req.visibility or "").strip()
    if visibility:
        predicates.append(Equals(Memo.visibility, visibility))

    return predicates


def build_order_by(req: ListMemoRequest) -> list[Any]:
    """置顶只在普通列表里生效；liked / commented / mentioned 列表按时间排。"""
    order: list[Any] = []
    if not (req.liked or req.commented or req.mentioned):
        order.append(Memo.priority.desc())
    order.append(Memo.created.desc())
    order.append(Memo.id.desc())
    return order


def total_pages(total: int, size: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / size)


def normalize_page(page: int | None, size: int | None) -> tuple[int, int]:
    page_i = max(int(page or 1), 1)
    size_i = max(int(size or settings.default_page_size), 1)
    return page_i, size_i


def resource_url(domain: str, resource: Resource) -> str:
    link = resource.external_link or ""
    if (resource.storage_type or "") == STORAGE_LOCAL:
        return f"{domain}{link}"
    return link


class MemoQueryService:
    """memo 的只读查询：列表、详情、统计。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_memos(
        self, req: ListMemoRequest, principal: Principal | None
    ) -> PageResult[MemoDTO]:
        page, size = normalize_page(req.page, req.size)
        where_clauses = compile_all(build_list_predicates(req, principal))

        try:
            total = int(
                await self.db.scalar(select(func.count()).select_from(Memo).where(*where_clauses)) or 0
            )
            result = await self.db.execute(
                select(Memo)
                .where(*where_clauses)
                .order_by(*build_order_by(req))
                .offset((page - 1) * size)
                .limit(size)
            )
            memos = list(result.scalars().all())
            items = await self.enrich(memos, principal)
        except SQLAlchemyError as e:
            logger.exception("[MEMO] List query failed: %s", exception_summary(e))
            raise SystemException() from e

        if principal is not None and req.commented and req.mentioned:
            await self._touch_last_clicked_mentioned(principal.user_id)

        return PageResult[MemoDTO](items=items, total=total, total_page=total_pages(total, size))

    async def get_memo(
        self, memo_id: int, principal: Principal | None, *, count_view: bool = False
    ) -> MemoDTO | None:
        """详情：可见性规则与列表一致（不过滤 status）。"""
        visible = visibility_predicate(principal).compile()
        memo = await self.db.scalar(select(Memo).where(Memo.id == memo_id, visible))
        if memo is None:
            return None

        if count_view:
            try:
                await self.db.execute(
                    update(Memo)
                    .where(Memo.id == memo_id)
                    .values(view_count=Memo.view_count + 1)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
                await self.db.refresh(memo)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.exception("[MEMO] Failed to count view memo_id=%s: %s", memo_id, exception_summary(e))
                raise SystemException() from e

        items = await self.enrich([memo], principal)
        return items[0]

    async def enrich(self, memos: list[Memo], principal: Principal | None) -> list[MemoDTO]:
        """补齐作者、资源、是否点赞、待审核评论数。"""
        if not memos:
            return []

        memo_ids = [m.id for m in memos]
        author_ids = sorted({m.user_id for m in memos})

        authors_result = await self.db.execute(select(User).where(User.id.in_(author_ids)))
        authors = {u.id: u for u in authors_result.scalars().all()}

        resources_result = await self.db.execute(
            select(Resource)
            .where(Resource.memo_id.in_(memo_ids))
            .order_by(Resource.created.asc(), Resource.public_id.asc())
        )
        domain = await sys_config.get_string(self.db, sys_config.DOMAIN)
        resources: dict[int, list[ResourceDTO]] = {}
        for r in resources_result.scalars().all():
            resources.setdefault(r.memo_id, []).append(
                ResourceDTO(
                    public_id=r.public_id,
                    url=resource_url(domain, r),
                    file_type=r.file_type,
                    file_name=r.file_name,
                    suffix=r.suffix,
                    storage_type=r.storage_type,
                )
            )

        liked_ids: set[int] = set()
        if principal is not None:
            liked_result = await self.db.execute(
                select(UserMemoRelation.memo_id).where(
                    UserMemoRelation.memo_id.in_(memo_ids),
                    UserMemoRelation.user_id == principal.user_id,
                    UserMemoRelation.fav_type == FAV_TYPE_LIKE,
                )
            )
            liked_ids = {int(x) for x in liked_result.scalars().all()}

        unapproved_result = await self.db.execute(
            select(Comment.memo_id, func.count())
            .where(Comment.memo_id.in_(memo_ids), Comment.user_id < 0, Comment.approved == 0)
            .group_by(Comment.memo_id)
        )
        unapproved = {int(memo_id): int(cnt) for memo_id, cnt in unapproved_result.all()}

        items: list[MemoDTO] = []
        for memo in memos:
            author = authors.get(memo.user_id)
            dto = MemoDTO.model_validate(memo)
            dto.created = as_aware(memo.created)
            dto.updated = as_aware(memo.updated)
            if author is not None:
                dto.author_name = author.display_name
                dto.author_role = author.role
                dto.email = author.email
                dto.bio = author.bio
                dto.avatar_url = author.avatar_url
            dto.resources = resources.get(memo.id, [])
            dto.liked = memo.id in liked_ids
            dto.unapproved_count = unapproved.get(memo.id, 0)
            items.append(dto)
        return items

    async def statistics(
        self,
        principal: Principal | None,
        begin: str | int | None = None,
        end: str | int | None = None,
    ) -> MemoStatisticsDTO:
        now = utcnow()
        begin_dt = parse_datetime_param(begin) or (now - timedelta(days=50))
        end_dt = parse_datetime_param(end) or (now + timedelta(days=1))
        if end_dt < begin_dt:
            raise ParamError("end before begin")

        if principal is not None:
            user = await self.db.get(User, principal.user_id)
        else:
            user = await self.db.scalar(
                select(User).where(User.role == ROLE_ADMIN).order_by(User.id.asc()).limit(1)
            )
        if user is None:
            raise BusinessFail("user not found")

        total_memos = int(
            await self.db.scalar(select(func.count()).select_from(Memo).where(Memo.user_id == user.id)) or 0
        )
        total_tags = int(
            await self.db.scalar(select(func.count()).select_from(Tag).where(Tag.user_id == user.id)) or 0
        )
        created = as_aware(user.created)
        total_days = (now - created).days if isinstance(created, datetime) else 0

        day = func.date(Memo.created)
        rows = (
            await self.db.execute(
                select(day.label("day"), func.count().label("total"))
                .where(Memo.user_id == user.id, Memo.created.between(begin_dt, end_dt))
                .group_by(day)
                .order_by(day.desc())
            )
        ).all()

        return MemoStatisticsDTO(
            total_memos=total_memos,
            total_days=total_days,
            total_tags=total_tags,
            items=[MemoStatisticsItem(date=str(r.day), total=int(r.total)) for r in rows],
        )

    async def _touch_last_clicked_mentioned(self, user_id: int) -> None:
        """刷新“提到我的”已读时间；失败只记日志，列表照常返回。"""
        try:
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(last_clicked_mentioned=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("[MEMO] Failed to update last_clicked_mentioned user_id=%s: %s", user_id, exception_summary(e))
