from __future__ import annotations

from pydantic import Field

from .common import CamelModel


class SysConfigItem(CamelModel):
    key: str
    value: str | None = None
    default_value: str | None = None


class SaveSysConfigRequest(CamelModel):
    items: list[SysConfigItem] = Field(default_factory=list)
