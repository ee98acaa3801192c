from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .common import CamelModel


class TagDTO(CamelModel):
    id: int
    name: str
    user_id: int
    memo_count: int = 0
    created: datetime | None = None
    updated: datetime | None = None


class SaveTagItem(CamelModel):
    id: int
    name: str


class SaveTagRequest(CamelModel):
    items: list[SaveTagItem] = Field(default_factory=list, alias="list")
