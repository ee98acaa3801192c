from sqlalchemy import Column, String, Text
from ..database import Base


class SysConfig(Base):
    """运行期配置（value 为空时读 default_value）"""
    __tablename__ = "t_sys_config"

    key = Column(String(100), primary_key=True)
    value = Column(Text)
    default_value = Column(Text)
