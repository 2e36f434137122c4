from sqlalchemy import Column, Date, Integer, ForeignKey, UniqueConstraint
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class YoutubeUsage(Base):
    """Analyses run and API units spent per user per UTC day."""

    __tablename__ = "youtube_usage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    day = Column(Date, index=True, nullable=False)
    analyses = Column(Integer, default=0, nullable=False)
    units = Column(Integer, default=0, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_youtube_usage_user_day"),
    )
