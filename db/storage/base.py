"""Storage contract shared by the in-memory and relational backends.

Every mutating operation runs as one unit: the write, any point postings it
implies, and the ranking recompute either all land or none do. Records go in
and out as pydantic schemas so callers never see backend objects.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from core.errors import QuotaExceededError
from schemas.idea_schema import Idea, IdeaCreate, IdeaQuota, IdeaUpdate, IdeaWithPosition, Vote
from schemas.points_schema import PointTransaction, UserPoints
from schemas.public_link_schema import PublicLink
from schemas.store_schema import (
    StoreItem,
    StoreItemCreate,
    StoreItemUpdate,
    StoreRedemption,
    StoreRedemptionDetail,
)
from schemas.user_schema import AudienceStats, UserInDB
from schemas.youtube_schema import YoutubeScore, YoutubeUsage

# Columns a billing sync may write; has_used_trial is handled separately (it only ever turns on)
SUBSCRIPTION_FIELDS = (
    "subscription_status",
    "subscription_plan",
    "subscription_start_date",
    "subscription_end_date",
    "subscription_canceled_at",
    "stripe_customer_id",
    "stripe_subscription_id",
    "trial_start_date",
    "trial_end_date",
)

PROFILE_FIELDS = (
    "profile_description",
    "logo_url",
    "twitter_url",
    "instagram_url",
    "youtube_url",
    "tiktok_url",
    "threads_url",
    "website_url",
    "profile_background",
    "role",
    "email",
)

# Columns that cannot be cleared; an explicit null in an update leaves them unchanged
REQUIRED_PROFILE_FIELDS = ("profile_background", "role", "email")
REQUIRED_STORE_ITEM_FIELDS = ("title", "description", "points_cost", "is_active")


def drop_cleared(changes: Dict[str, Any], required) -> Dict[str, Any]:
    return {k: v for k, v in changes.items() if v is not None or k not in required}


def check_youtube_limits(analyses: int, units_used: int, units: int, user_limit: int, daily_units: int) -> None:
    if analyses >= user_limit:
        raise QuotaExceededError(
            "Daily analysis limit reached. Try again tomorrow.", limit=user_limit, remaining=0
        )
    if units_used + units > daily_units:
        raise QuotaExceededError("Daily YouTube API quota exceeded")


class Storage(ABC):
    # Users
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserInDB]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserInDB]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserInDB]: ...

    @abstractmethod
    async def get_user_by_stripe_customer_id(self, customer_id: str) -> Optional[UserInDB]: ...

    @abstractmethod
    async def create_user(self, username: str, email: str, hashed_password: str, role: str = "audience") -> UserInDB: ...

    @abstractmethod
    async def update_user_profile(self, user_id: int, data: Dict[str, Any]) -> UserInDB: ...

    @abstractmethod
    async def update_user_password(self, user_id: int, hashed_password: str) -> UserInDB: ...

    @abstractmethod
    async def update_user_subscription(self, user_id: int, data: Dict[str, Any]) -> UserInDB: ...

    @abstractmethod
    async def start_user_trial(self, user_id: int, trial_days: int, now: Optional[datetime] = None) -> UserInDB: ...

    @abstractmethod
    async def update_priority_weight(self, user_id: int, weight: int) -> UserInDB: ...

    @abstractmethod
    async def get_audience_stats(self, user_id: int) -> AudienceStats: ...

    # Ideas
    @abstractmethod
    async def get_ideas(self, creator_id: Optional[int] = None, status: Optional[str] = None) -> List[Idea]: ...

    @abstractmethod
    async def get_idea(self, idea_id: int) -> Optional[Idea]: ...

    @abstractmethod
    async def create_idea(self, creator_id: int, data: IdeaCreate) -> Idea: ...

    @abstractmethod
    async def create_ideas_bulk(self, creator_id: int, items: List[IdeaCreate]) -> List[Idea]: ...

    @abstractmethod
    async def suggest_idea(self, creator_id: int, data: IdeaCreate, suggester_id: int, cost: int = 0) -> Idea: ...

    @abstractmethod
    async def approve_idea(self, idea_id: int, reward: int = 0) -> Idea: ...

    @abstractmethod
    async def get_pending_ideas(self, creator_id: int) -> List[Idea]: ...

    @abstractmethod
    async def update_idea(self, idea_id: int, data: IdeaUpdate) -> Idea: ...

    @abstractmethod
    async def delete_idea(self, idea_id: int) -> None: ...

    @abstractmethod
    async def get_ideas_with_positions(self, creator_id: Optional[int] = None) -> List[IdeaWithPosition]: ...

    @abstractmethod
    async def update_positions(self) -> None: ...

    @abstractmethod
    async def get_user_idea_quota(self, creator_id: int, limit: int) -> IdeaQuota: ...

    # Votes
    @abstractmethod
    async def get_vote_by_user_or_session(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None
    ) -> Optional[Vote]: ...

    @abstractmethod
    async def create_vote(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None, reward: int = 0
    ) -> Idea: ...

    @abstractmethod
    async def increment_vote(self, idea_id: int) -> Idea: ...

    # Points
    @abstractmethod
    async def get_user_points(self, user_id: int, creator_id: int) -> UserPoints: ...

    @abstractmethod
    async def update_user_points(
        self,
        user_id: int,
        creator_id: int,
        amount: int,
        type_: str,
        reason: str,
        related_id: Optional[int] = None,
    ) -> UserPoints: ...

    @abstractmethod
    async def get_user_point_transactions(
        self, user_id: int, creator_id: Optional[int] = None, limit: int = 50
    ) -> List[PointTransaction]: ...

    # Store
    @abstractmethod
    async def get_store_items(self, creator_id: int, active_only: bool = False) -> List[StoreItem]: ...

    @abstractmethod
    async def get_store_item(self, item_id: int) -> Optional[StoreItem]: ...

    @abstractmethod
    async def create_store_item(self, creator_id: int, data: StoreItemCreate, max_active: int) -> StoreItem: ...

    @abstractmethod
    async def update_store_item(
        self, item_id: int, data: StoreItemUpdate, max_active: Optional[int] = None
    ) -> StoreItem: ...

    @abstractmethod
    async def delete_store_item(self, item_id: int) -> None: ...

    @abstractmethod
    async def get_store_redemption(self, redemption_id: int) -> Optional[StoreRedemption]: ...

    @abstractmethod
    async def get_store_redemptions(
        self, creator_id: int, limit: int = 10, offset: int = 0, status: Optional[str] = None
    ) -> Tuple[List[StoreRedemptionDetail], int]: ...

    @abstractmethod
    async def create_store_redemption(self, store_item_id: int, user_id: int) -> StoreRedemption: ...

    @abstractmethod
    async def update_redemption_status(self, redemption_id: int, new_status: str, actor_id: int) -> StoreRedemption: ...

    # Public links
    @abstractmethod
    async def create_public_link(self, creator_id: int, token: str, expires_at: Optional[datetime] = None) -> PublicLink: ...

    @abstractmethod
    async def get_public_link(self, link_id: int) -> Optional[PublicLink]: ...

    @abstractmethod
    async def get_public_link_by_token(self, token: str) -> Optional[PublicLink]: ...

    @abstractmethod
    async def get_user_public_links(self, creator_id: int) -> List[PublicLink]: ...

    @abstractmethod
    async def toggle_public_link_status(self, link_id: int, is_active: bool) -> PublicLink: ...

    @abstractmethod
    async def delete_public_link(self, link_id: int) -> None: ...

    # YouTube scores
    @abstractmethod
    async def get_youtube_score(self, idea_id: int) -> Optional[YoutubeScore]: ...

    @abstractmethod
    async def save_youtube_score(self, score: YoutubeScore) -> YoutubeScore: ...

    # YouTube usage
    @abstractmethod
    async def get_youtube_usage(self, user_id: int, day: date) -> YoutubeUsage: ...

    @abstractmethod
    async def get_youtube_units_used(self, day: date) -> int: ...

    # Checks both daily limits and counts one analysis, atomically
    @abstractmethod
    async def record_youtube_analysis(
        self, user_id: int, day: date, units: int, user_limit: int, daily_units: int
    ) -> YoutubeUsage: ...
