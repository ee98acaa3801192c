from __future__ import annotations

from .common import CamelModel


class DevTokenDTO(CamelModel):
    id: int
    name: str
    token: str
