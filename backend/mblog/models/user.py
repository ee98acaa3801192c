from sqlalchemy import Column, Integer, String, DateTime, Text
from ..database import Base
from ..utils.dates import utcnow


ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"


class User(Base):
    """用户表"""
    __tablename__ = "t_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    email = Column(String(255))
    display_name = Column(String(50), unique=True)
    bio = Column(Text)
    role = Column(String(20), default=ROLE_USER)
    avatar_url = Column(String(500))
    # 最近一次查看“提到我的”列表的时间，用于计算未读提及数
    last_clicked_mentioned = Column(DateTime(timezone=True))
    default_visibility = Column(String(20))
    default_enable_comment = Column(String(10))
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
