from __future__ import annotations

from datetime import datetime

from .common import CamelModel


class RegisterUserRequest(CamelModel):
    username: str | None = None
    password: str | None = None
    display_name: str | None = None
    email: str | None = None
    bio: str | None = None


class LoginRequest(CamelModel):
    username: str | None = None
    password: str | None = None


class LoginResponse(CamelModel):
    token: str
    username: str
    role: str | None = None
    user_id: int
    default_visibility: str | None = None
    default_enable_comment: str | None = None


class UpdateUserRequest(CamelModel):
    """只更新非 None 字段；password 为空白时忽略。"""

    password: str | None = None
    display_name: str | None = None
    email: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    default_visibility: str | None = None
    default_enable_comment: str | None = None


class UserDTO(CamelModel):
    id: int
    username: str
    display_name: str | None = None
    email: str | None = None
    bio: str | None = None
    role: str | None = None
    avatar_url: str | None = None
    default_visibility: str | None = None
    default_enable_comment: str | None = None
    created: datetime | None = None


class UserStatisticsDTO(CamelModel):
    total_memos: int = 0
    total_liked: int = 0
    total_mentioned: int = 0
    total_commented: int = 0
    unread_mentioned: int = 0
