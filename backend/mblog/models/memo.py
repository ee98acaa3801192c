from sqlalchemy import Column, Integer, String, DateTime, Text
from ..database import Base
from ..utils.dates import utcnow


VISIBILITY_PUBLIC = "PUBLIC"
VISIBILITY_PROTECT = "PROTECT"
VISIBILITY_PRIVATE = "PRIVATE"
VISIBILITIES = (VISIBILITY_PUBLIC, VISIBILITY_PROTECT, VISIBILITY_PRIVATE)

STATUS_NORMAL = "NORMAL"


class Memo(Base):
    """memo 表

    comment_count / like_count / view_count 只由服务层在事务里维护。
    tags 是标签的展示形式（"#a,#b,"），成员关系以 t_memo_tag 为准。
    """
    __tablename__ = "t_memo"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    content = Column(Text, default="")
    tags = Column(String(500), default="")
    visibility = Column(String(20), default=VISIBILITY_PUBLIC, nullable=False)
    status = Column(String(20), default=STATUS_NORMAL, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    like_count = Column(Integer, default=0, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    enable_comment = Column(Integer, default=0, nullable=False)
    source = Column(String(20))
    created = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated = Column(DateTime(timezone=True), default=utcnow)
