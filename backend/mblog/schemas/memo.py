from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .common import CamelModel


class SaveMemoRequest(CamelModel):
    content: str | None = None
    visibility: str | None = None
    enable_comment: bool | int | None = None
    resource_id_list: list[str] = Field(default_factory=list)
    source: str | None = None


class UpdateMemoRequest(SaveMemoRequest):
    id: int | None = None


class ListMemoRequest(CamelModel):
    """memo 列表查询条件

    begin / end 接受 RFC3339 字符串或毫秒时间戳，且只有同时提供才生效。
    """

    page: int = 1
    size: int | None = None
    tag: str | None = None
    visibility: str | None = None
    user_id: int | None = None
    begin: str | int | None = None
    end: str | int | None = None
    search: str | None = None
    liked: bool = False
    commented: bool = False
    mentioned: bool = False


class SetPriorityRequest(CamelModel):
    id: int
    set: bool = True


class MemoRelationRequest(CamelModel):
    memo_id: int
    type: str = "ADD"  # ADD | REMOVE
    fav_type: str = "LIKE"


class MemoStatisticsRequest(CamelModel):
    begin: str | int | None = None
    end: str | int | None = None


class ResourceDTO(CamelModel):
    public_id: str
    url: str | None = None
    file_type: str | None = None
    file_name: str | None = None
    suffix: str | None = None
    storage_type: str | None = None


class MemoDTO(CamelModel):
    id: int
    user_id: int
    content: str | None = None
    tags: str | None = None
    visibility: str
    status: str
    priority: int = 0
    comment_count: int = 0
    like_count: int = 0
    view_count: int = 0
    enable_comment: int = 0
    source: str | None = None
    created: datetime | None = None
    updated: datetime | None = None

    author_name: str | None = None
    author_role: str | None = None
    email: str | None = None
    bio: str | None = None
    avatar_url: str | None = None

    resources: list[ResourceDTO] = Field(default_factory=list)
    liked: bool = False
    unapproved_count: int = 0


class MemoStatisticsItem(CamelModel):
    date: str
    total: int


class MemoStatisticsDTO(CamelModel):
    total_memos: int = 0
    total_days: int = 0
    total_tags: int = 0
    items: list[MemoStatisticsItem] = Field(default_factory=list)
