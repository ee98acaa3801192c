from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from ..database import Base
from ..utils.dates import utcnow


class Tag(Base):
    """标签表（按用户隔离，memo_count 为派生计数）"""
    __tablename__ = "t_tag"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    memo_count = Column(Integer, default=0, nullable=False)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow)


class MemoTag(Base):
    """memo 与标签的成员关系"""
    __tablename__ = "t_memo_tag"

    memo_id = Column(Integer, primary_key=True)
    tag_id = Column(Integer, primary_key=True, index=True)
