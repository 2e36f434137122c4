from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional

UserRole = Literal["creator", "audience"]
SubscriptionStatus = Literal["free", "trial", "premium", "canceled"]
PremiumReason = Literal["premium", "trial", "trial_expired", "premium_expired", "premium_canceled", "no_subscription"]

class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    email: EmailStr

class UserCreate(UserBase):
    password: str = Field(min_length=6, max_length=100)
    role: UserRole = "audience"

class User(UserBase):
    id: int
    role: UserRole
    profile_description: Optional[str] = None
    logo_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    youtube_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    threads_url: Optional[str] = None
    website_url: Optional[str] = None
    profile_background: str = "gradient-1"
    priority_weight: int = 55
    subscription_status: SubscriptionStatus = "free"
    has_used_trial: bool = False
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    subscription_plan: Optional[str] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    subscription_canceled_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
        extra = "ignore"

class UserInDB(User):
    hashed_password: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

class ProfileUpdate(BaseModel):
    profile_description: Optional[str] = Field(default=None, max_length=500)
    logo_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    youtube_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    threads_url: Optional[str] = None
    website_url: Optional[str] = None
    profile_background: Optional[str] = None
    role: Optional[UserRole] = None
    email: Optional[EmailStr] = None

class SubscriptionUpdate(BaseModel):
    subscription_status: Optional[SubscriptionStatus] = None
    subscription_plan: Optional[Literal["monthly", "yearly"]] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    subscription_canceled_at: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=100)

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class PremiumAccessStatus(BaseModel):
    has_access: bool
    reason: PremiumReason
    days_remaining: Optional[int] = None

class AudienceStats(BaseModel):
    votes_given: int = 0
    ideas_suggested: int = 0
    ideas_approved: int = 0

class PriorityWeightUpdate(BaseModel):
    weight: int
