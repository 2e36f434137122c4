from sqlalchemy import Column, String, Integer, ForeignKey, Index, UniqueConstraint
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class Idea(Base):
    __tablename__ = "ideas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    description = Column(String(280), nullable=False, default="")
    votes = Column(Integer, default=0, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    suggested_by = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    status = Column(String(20), default="approved", nullable=False)  # 'approved' | 'pending'
    current_position = Column(Integer, nullable=True)
    previous_position = Column(Integer, nullable=True)
    # Python-side default keeps sub-second precision for the ranking tie-break
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    last_position_update = Column(UTCDateTime, default=utcnow, nullable=False)
    __table_args__ = (
        Index("ix_ideas_creator_status", "creator_id", "status"),
        Index("ix_ideas_ranking", "status", "votes", "created_at"),
    )


class Vote(Base):
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idea_id = Column(Integer, ForeignKey("ideas.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    session_id = Column(String(255), nullable=True)
    voted_at = Column(UTCDateTime, default=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint("idea_id", "user_id", name="uq_vote_idea_user"),
    )
