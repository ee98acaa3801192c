from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


T = TypeVar("T")


class CamelModel(BaseModel):
    """对外 JSON 使用 camelCase，入参同时接受 snake_case。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    """统一响应信封：code == 0 表示成功。"""

    code: int = 0
    msg: str = "success"
    data: T | None = None


class PageResult(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    total: int = 0
    total_page: int = 0


def ok(data=None) -> ApiResponse:
    return ApiResponse(data=data)
