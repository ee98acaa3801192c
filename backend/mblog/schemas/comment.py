from __future__ import annotations

from datetime import datetime

from .common import CamelModel


class SaveCommentRequest(CamelModel):
    memo_id: int
    content: str
    # 以下字段只对匿名评论有效
    username: str | None = None
    email: str | None = None
    link: str | None = None


class QueryCommentRequest(CamelModel):
    memo_id: int
    page: int = 1
    size: int | None = None


class CommentDTO(CamelModel):
    id: int
    memo_id: int
    content: str
    user_id: int
    user_name: str | None = None
    mentioned: str | None = None
    mentioned_user_id: str | None = None
    email: str | None = None
    link: str | None = None
    approved: int | None = None
    created: datetime | None = None
    updated: datetime | None = None
