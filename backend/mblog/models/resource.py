from sqlalchemy import Column, Integer, String, DateTime, BigInteger
from ..database import Base
from ..utils.dates import utcnow


STORAGE_LOCAL = "LOCAL"


class Resource(Base):
    """上传的资源（图片/附件）

    memo_id = 0 表示已上传但尚未挂到任何 memo 上。
    """
    __tablename__ = "t_resource"

    public_id = Column(String(64), primary_key=True)
    memo_id = Column(Integer, default=0, nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    file_type = Column(String(100))
    file_name = Column(String(255))
    file_hash = Column(String(128))
    size = Column(BigInteger, default=0)
    internal_path = Column(String(500))
    external_link = Column(String(1000))
    storage_type = Column(String(20), default=STORAGE_LOCAL)
    suffix = Column(String(20))
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow)
