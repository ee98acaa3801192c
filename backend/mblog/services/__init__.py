from .comment_service import CommentService
from .dev_token_service import DevTokenService
from .identity import Principal, resolve_optional_principal, resolve_principal
from .memo_query import MemoQueryService
from .memo_service import MemoService
from .tag_service import TagService
from .tag_set import TagSet
from .user_service import UserService
from .webhook import schedule_memo_webhook

__all__ = [
    "CommentService",
    "DevTokenService",
    "Principal",
    "resolve_optional_principal",
    "resolve_principal",
    "MemoQueryService",
    "MemoService",
    "TagService",
    "TagSet",
    "UserService",
    "schedule_memo_webhook",
]
