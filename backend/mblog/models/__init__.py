from .user import User
from .memo import Memo
from .tag import Tag, MemoTag
from .comment import Comment, CommentMention
from .resource import Resource
from .user_memo_relation import UserMemoRelation
from .dev_token import DevToken
from .sys_config import SysConfig

__all__ = [
    "User",
    "Memo",
    "Tag",
    "MemoTag",
    "Comment",
    "CommentMention",
    "Resource",
    "UserMemoRelation",
    "DevToken",
    "SysConfig",
]
