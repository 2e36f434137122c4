from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, Index
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class StoreItem(Base):
    __tablename__ = "store_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    points_cost = Column(Integer, nullable=False)
    max_quantity = Column(Integer, nullable=True)  # NULL = unlimited
    current_quantity = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
    __table_args__ = (
        Index("ix_store_items_creator_active", "creator_id", "is_active"),
    )


class StoreRedemption(Base):
    __tablename__ = "store_redemptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_item_id = Column(Integer, ForeignKey("store_items.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    points_spent = Column(Integer, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # 'pending' | 'completed'
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)
    __table_args__ = (
        Index("ix_store_redemptions_creator_status", "creator_id", "status"),
    )
