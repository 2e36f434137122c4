from sqlalchemy import Column, String, Integer, ForeignKey, Index, UniqueConstraint
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class UserPoints(Base):
    """Materialized balance per (user, creator); derivable from point_transactions."""

    __tablename__ = "user_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    points_earned = Column(Integer, default=0, nullable=False)
    points_spent = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint("user_id", "creator_id", name="uq_user_points_user_creator"),
    )


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String(10), nullable=False)  # 'earned' | 'spent'
    amount = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)
    related_id = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    __table_args__ = (
        Index("ix_point_tx_user_creator_created", "user_id", "creator_id", "created_at"),
    )
