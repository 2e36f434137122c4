from sqlalchemy import Column, String, Integer, Boolean, Index
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), default="audience", nullable=False)  # 'creator' | 'audience'

    # Public profile
    profile_description = Column(String(500), nullable=True)
    logo_url = Column(String(1024), nullable=True)
    twitter_url = Column(String(1024), nullable=True)
    instagram_url = Column(String(1024), nullable=True)
    youtube_url = Column(String(1024), nullable=True)
    tiktok_url = Column(String(1024), nullable=True)
    threads_url = Column(String(1024), nullable=True)
    website_url = Column(String(1024), nullable=True)
    profile_background = Column(String(50), default="gradient-1", nullable=False)
    priority_weight = Column(Integer, default=55, nullable=False)

    # Subscription
    subscription_status = Column(String(20), default="free", nullable=False)  # free | trial | premium | canceled
    has_used_trial = Column(Boolean, default=False, nullable=False)
    trial_start_date = Column(UTCDateTime, nullable=True)
    trial_end_date = Column(UTCDateTime, nullable=True)
    subscription_plan = Column(String(20), nullable=True)  # monthly | yearly
    subscription_start_date = Column(UTCDateTime, nullable=True)
    subscription_end_date = Column(UTCDateTime, nullable=True)
    subscription_canceled_at = Column(UTCDateTime, nullable=True)
    stripe_customer_id = Column(String(255), unique=True, nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, onupdate=utcnow)
    __table_args__ = (
        Index("ix_users_role", "role"),
    )
