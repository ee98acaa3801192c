from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import atomic
from ..models import Comment, CommentMention, Memo, User, UserMemoRelation
from ..models.user import ROLE_ADMIN, ROLE_USER
from ..schemas import (
    LoginRequest,
    LoginResponse,
    RegisterUserRequest,
    UpdateUserRequest,
    UserDTO,
    UserStatisticsDTO,
)
from ..utils.dates import as_aware, utcnow
from ..utils.errors import BusinessFail, NeedLogin, ParamError
from ..utils.password import hash_password, verify_password
from ..utils.token import DEVICE_WEB, issue_token
from . import sys_config
from .identity import Principal

logger = logging.getLogger(__name__)


def _to_dto(user: User) -> UserDTO:
    dto = UserDTO.model_validate(user)
    dto.created = as_aware(user.created)
    return dto


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _name_taken(self, *names: str, exclude_id: int | None = None) -> bool:
        candidates = [n for n in names if n]
        if not candidates:
            return False
        stmt = select(func.count()).select_from(User).where(
            or_(User.username.in_(candidates), User.display_name.in_(candidates))
        )
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return int(await self.db.scalar(stmt) or 0) > 0

    async def register(self, req: RegisterUserRequest, *, role: str = ROLE_USER, check_open: bool = True) -> int:
        if check_open and not await sys_config.get_boolean(self.db, sys_config.OPEN_REGISTER):
            raise BusinessFail("registration is closed")

        username = (req.username or "").strip()
        password = req.password or ""
        if not username or not password:
            raise ParamError("username and password are required")
        display_name = (req.display_name or "").strip() or username

        if await self._name_taken(username, display_name):
            raise BusinessFail("username or display name exists")

        now = utcnow()
        user = User(
            username=username,
            password_hash=hash_password(password),
            display_name=display_name,
            email=req.email,
            bio=req.bio,
            role=role,
            created=now,
            updated=now,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # 并发注册撞上唯一约束
            await self.db.rollback()
            raise BusinessFail("username or display name exists") from e

        logger.info("[USER] Registered user_id=%s role=%s", user.id, role)
        return int(user.id)

    async def login(self, req: LoginRequest) -> LoginResponse:
        username = (req.username or "").strip()
        if not username or not req.password:
            raise ParamError("username and password are required")

        user = await self.db.scalar(select(User).where(User.username == username))
        if user is None or not verify_password(req.password, user.password_hash):
            logger.info("[AUTH] Login failed username=%s", username)
            raise BusinessFail("username or password incorrect")

        return LoginResponse(
            token=issue_token(user.id, DEVICE_WEB),
            username=user.username,
            role=user.role,
            user_id=user.id,
            default_visibility=user.default_visibility,
            default_enable_comment=user.default_enable_comment,
        )

    async def update(self, principal: Principal, req: UpdateUserRequest) -> None:
        user = await self.db.get(User, principal.user_id)
        if user is None:
            raise BusinessFail("user not found")

        display_name = (req.display_name or "").strip()
        if display_name and display_name != user.display_name:
            if await self._name_taken(display_name, exclude_id=user.id):
                raise BusinessFail("username or display name exists")

        async with atomic(self.db):
            if display_name:
                user.display_name = display_name
            if req.password and req.password.strip():
                user.password_hash = hash_password(req.password)
            for field in ("email", "bio", "avatar_url", "default_visibility", "default_enable_comment"):
                value = getattr(req, field)
                if value is not None:
                    setattr(user, field, value)
            user.updated = utcnow()

    async def get_admin(self) -> User | None:
        return await self.db.scalar(
            select(User).where(User.role == ROLE_ADMIN).order_by(User.id.asc()).limit(1)
        )

    async def current(self, principal: Principal | None) -> UserDTO | None:
        """已登录返回自己，否则返回管理员资料（站点主页展示用）。"""
        user = await self.db.get(User, principal.user_id) if principal is not None else await self.get_admin()
        return _to_dto(user) if user is not None else None

    async def get(self, user_id: int) -> UserDTO | None:
        user = await self.db.get(User, user_id)
        return _to_dto(user) if user is not None else None

    async def list_users(self, principal: Principal) -> list[UserDTO]:
        if not principal.is_admin:
            raise NeedLogin()
        result = await self.db.execute(select(User).order_by(User.id.asc()))
        return [_to_dto(u) for u in result.scalars().all()]

    async def list_names(self) -> list[str]:
        result = await self.db.execute(
            select(User.display_name).where(User.display_name.is_not(None)).order_by(User.id.asc())
        )
        return [n for n in result.scalars().all() if n]

    async def statistics(self, principal: Principal) -> UserStatisticsDTO:
        me = principal.user_id
        user = await self.db.get(User, me)
        if user is None:
            raise BusinessFail("user not found")

        total_memos = await self.db.scalar(
            select(func.count()).select_from(Memo).where(Memo.user_id == me)
        )
        total_liked = await self.db.scalar(
            select(func.count()).select_from(UserMemoRelation).where(UserMemoRelation.user_id == me)
        )
        total_mentioned = await self.db.scalar(
            select(func.count(distinct(CommentMention.memo_id))).where(CommentMention.user_id == me)
        )
        total_commented = await self.db.scalar(
            select(func.count(distinct(Comment.memo_id))).where(Comment.user_id == me)
        )

        since = as_aware(user.last_clicked_mentioned) or (
            datetime.now(timezone.utc) - timedelta(days=365 * 100)
        )
        unread_mentioned = await self.db.scalar(
            select(func.count())
            .select_from(CommentMention)
            .join(Comment, Comment.id == CommentMention.comment_id)
            .where(CommentMention.user_id == me, Comment.created >= since)
        )

        return UserStatisticsDTO(
            total_memos=int(total_memos or 0),
            total_liked=int(total_liked or 0),
            total_mentioned=int(total_mentioned or 0),
            total_commented=int(total_commented or 0),
            unread_mentioned=int(unread_mentioned or 0),
        )
