from sqlalchemy import Column, String, Integer, Boolean, ForeignKey
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class PublicLink(Base):
    __tablename__ = "public_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
