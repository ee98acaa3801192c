from sqlalchemy import Column, Integer, String, DateTime, Text
from ..database import Base
from ..utils.dates import utcnow


# 匿名评论的 user_id
ANONYMOUS_USER_ID = -1


class Comment(Base):
    """评论表

    - user_id < 0 表示匿名评论，user_name 为评论时的快照；
    - approved 只对匿名评论有意义（0 待审核 / 1 已通过）；
    - mentioned / mentioned_user_id 是展示形式，成员关系见 t_comment_mention。
    """
    __tablename__ = "t_comment"

    id = Column(Integer, primary_key=True, index=True)
    memo_id = Column(Integer, nullable=False, index=True)
    content = Column(Text, nullable=False)
    user_id = Column(Integer, nullable=False)
    user_name = Column(String(100))
    mentioned = Column(Text)
    mentioned_user_id = Column(Text, default="")
    email = Column(String(255))
    link = Column(String(500))
    approved = Column(Integer, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow)


class CommentMention(Base):
    """评论里 @ 到的用户"""
    __tablename__ = "t_comment_mention"

    comment_id = Column(Integer, primary_key=True)
    user_id = Column(Integer, primary_key=True)
    memo_id = Column(Integer, nullable=False, index=True)
