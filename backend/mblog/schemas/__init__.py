from .common import ApiResponse, CamelModel, PageResult, ok
from .comment import CommentDTO, QueryCommentRequest, SaveCommentRequest
from .memo import (
    ListMemoRequest,
    MemoDTO,
    MemoRelationRequest,
    MemoStatisticsDTO,
    MemoStatisticsItem,
    MemoStatisticsRequest,
    ResourceDTO,
    SaveMemoRequest,
    SetPriorityRequest,
    UpdateMemoRequest,
)
from .sys_config import SaveSysConfigRequest, SysConfigItem
from .tag import SaveTagItem, SaveTagRequest, TagDTO
from .token import DevTokenDTO
from .user import (
    LoginRequest,
    LoginResponse,
    RegisterUserRequest,
    UpdateUserRequest,
    UserDTO,
    UserStatisticsDTO,
)

__all__ = [
    "ApiResponse",
    "CamelModel",
    "PageResult",
    "ok",
    "CommentDTO",
    "QueryCommentRequest",
    "SaveCommentRequest",
    "ListMemoRequest",
    "MemoDTO",
    "MemoRelationRequest",
    "MemoStatisticsDTO",
    "MemoStatisticsItem",
    "MemoStatisticsRequest",
    "ResourceDTO",
    "SaveMemoRequest",
    "SetPriorityRequest",
    "UpdateMemoRequest",
    "SaveSysConfigRequest",
    "SysConfigItem",
    "SaveTagItem",
    "SaveTagRequest",
    "TagDTO",
    "DevTokenDTO",
    "LoginRequest",
    "LoginResponse",
    "RegisterUserRequest",
    "UpdateUserRequest",
    "UserDTO",
    "UserStatisticsDTO",
]
