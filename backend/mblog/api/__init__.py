from .users import router as users_router
from .tokens import router as tokens_router
from .memos import router as memos_router
from .tags import router as tags_router
from .comments import router as comments_router
from .sys_config import router as sys_config_router

__all__ = [
    "users_router",
    "tokens_router",
    "memos_router",
    "tags_router",
    "comments_router",
    "sys_config_router",
]
