from sqlalchemy import Column, Integer, String, Text
from ..database import Base


DEFAULT_TOKEN_NAME = "default"


class DevToken(Base):
    """API 设备 token（每个用户一个，name 固定为 default）"""
    __tablename__ = "t_dev_token"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), default=DEFAULT_TOKEN_NAME, nullable=False)
    token = Column(Text, nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
