from sqlalchemy import Column, Integer, String, DateTime
from ..database import Base
from ..utils.dates import utcnow


FAV_TYPE_LIKE = "LIKE"


class UserMemoRelation(Base):
    """用户与 memo 的关系（目前只有点赞）

    同一 (memo_id, user_id, fav_type) 最多一行，由服务层在插入前检查。
    """
    __tablename__ = "t_user_memo_relation"

    id = Column(Integer, primary_key=True, index=True)
    memo_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    fav_type = Column(String(20), default=FAV_TYPE_LIKE, nullable=False)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow)
