"""Dict-backed storage for local runs and tests.

A single ``asyncio.Lock`` serializes every mutating call, which makes each
composite operation (vote + points + recompute, redemption) atomic. Records
are handed out as copies so callers cannot mutate stored state.
"""
import asyncio
import itertools
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidTransitionError,
    NotFoundError,
    QuotaExceededError,
    UnavailableError,
    ValidationError,
)
from db.storage.base import (
    PROFILE_FIELDS,
    REQUIRED_PROFILE_FIELDS,
    REQUIRED_STORE_ITEM_FIELDS,
    SUBSCRIPTION_FIELDS,
    Storage,
    check_youtube_limits,
    drop_cleared,
)
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
from services import points_ledger, ranking
from utils.dates import utcnow

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    def __init__(self, ranking_scope: Optional[str] = None):
        self.ranking_scope = ranking_scope or settings.RANKING_SCOPE
        self._lock = asyncio.Lock()
        self._users: Dict[int, UserInDB] = {}
        self._ideas: Dict[int, Idea] = {}
        self._votes: Dict[int, Vote] = {}
        self._points: Dict[Tuple[int, int], UserPoints] = {}
        self._transactions: List[PointTransaction] = []
        self._store_items: Dict[int, StoreItem] = {}
        self._redemptions: Dict[int, StoreRedemption] = {}
        self._links: Dict[int, PublicLink] = {}
        self._youtube: Dict[int, YoutubeScore] = {}
        self._youtube_usage: Dict[Tuple[int, date], YoutubeUsage] = {}
        self._ids = {name: itertools.count(1) for name in (
            "user", "idea", "vote", "tx", "item", "redemption", "link",
        )}

    def _next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    # ---- internal helpers (callers hold the lock) ----

    def _require_user(self, user_id: int) -> UserInDB:
        user = self._users.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _require_idea(self, idea_id: int) -> Idea:
        idea = self._ideas.get(idea_id)
        if not idea:
            raise NotFoundError("Idea not found")
        return idea

    def _recompute(self) -> None:
        ranking.apply_positions(list(self._ideas.values()), self.ranking_scope)

    def _balance(self, user_id: int, creator_id: int) -> UserPoints:
        return self._points.get((user_id, creator_id)) or UserPoints(user_id=user_id, creator_id=creator_id)

    def _post(self, user_id: int, creator_id: int, amount: int, type_: str, reason: str,
              related_id: Optional[int] = None) -> UserPoints:
        balance = self._balance(user_id, creator_id).model_copy()
        points_ledger.apply_posting(balance, amount, type_)
        self._points[(user_id, creator_id)] = balance
        self._transactions.append(PointTransaction(
            id=self._next_id("tx"),
            user_id=user_id,
            creator_id=creator_id,
            type=type_,
            amount=amount,
            reason=reason,
            related_id=related_id,
            created_at=utcnow(),
        ))
        logger.info(f"Points {type_}: user={user_id} creator={creator_id} amount={amount} reason={reason}")
        return balance

    def _new_idea(self, creator_id: int, data: IdeaCreate, status: str, suggested_by: Optional[int] = None) -> Idea:
        now = utcnow()
        idea = Idea(
            id=self._next_id("idea"),
            title=data.title,
            description=data.description,
            votes=0,
            creator_id=creator_id,
            suggested_by=suggested_by,
            status=status,
            created_at=now,
            last_position_update=now,
        )
        self._ideas[idea.id] = idea
        return idea

    # ---- users ----

    async def get_user(self, user_id: int) -> Optional[UserInDB]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_user_by_username(self, username: str) -> Optional[UserInDB]:
        wanted = (username or "").lower()
        for user in self._users.values():
            if user.username.lower() == wanted:
                return user.model_copy()
        return None

    async def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        wanted = (email or "").lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user.model_copy()
        return None

    async def get_user_by_stripe_customer_id(self, customer_id: str) -> Optional[UserInDB]:
        for user in self._users.values():
            if customer_id and user.stripe_customer_id == customer_id:
                return user.model_copy()
        return None

    async def create_user(self, username: str, email: str, hashed_password: str, role: str = "audience") -> UserInDB:
        async with self._lock:
            if await self.get_user_by_username(username):
                raise ConflictError("Username already registered")
            if await self.get_user_by_email(email):
                raise ConflictError("Email already registered")
            user = UserInDB(
                id=self._next_id("user"),
                username=username,
                email=email,
                hashed_password=hashed_password,
                role=role,
                created_at=utcnow(),
            )
            self._users[user.id] = user
            return user.model_copy()

    async def update_user_profile(self, user_id: int, data: Dict[str, Any]) -> UserInDB:
        async with self._lock:
            user = self._require_user(user_id)
            changes = drop_cleared({k: v for k, v in data.items() if k in PROFILE_FIELDS}, REQUIRED_PROFILE_FIELDS)
            if "email" in changes:
                other = await self.get_user_by_email(changes["email"])
                if other and other.id != user_id:
                    raise ConflictError("Email already registered")
            self._users[user_id] = user.model_copy(update=changes)
            return self._users[user_id].model_copy()

    async def update_user_password(self, user_id: int, hashed_password: str) -> UserInDB:
        async with self._lock:
            user = self._require_user(user_id)
            self._users[user_id] = user.model_copy(update={"hashed_password": hashed_password})
            return self._users[user_id].model_copy()

    async def update_user_subscription(self, user_id: int, data: Dict[str, Any]) -> UserInDB:
        async with self._lock:
            user = self._require_user(user_id)
            changes = {k: v for k, v in data.items() if k in SUBSCRIPTION_FIELDS}
            if data.get("has_used_trial") or changes.get("subscription_status") == "trial":
                changes["has_used_trial"] = True
            self._users[user_id] = user.model_copy(update=changes)
            return self._users[user_id].model_copy()

    async def start_user_trial(self, user_id: int, trial_days: int, now: Optional[datetime] = None) -> UserInDB:
        async with self._lock:
            user = self._require_user(user_id)
            if user.has_used_trial:
                raise ConflictError("Trial already used")
            now = now or utcnow()
            self._users[user_id] = user.model_copy(update={
                "subscription_status": "trial",
                "has_used_trial": True,
                "trial_start_date": now,
                "trial_end_date": now + timedelta(days=trial_days),
            })
            return self._users[user_id].model_copy()

    async def update_priority_weight(self, user_id: int, weight: int) -> UserInDB:
        async with self._lock:
            user = self._require_user(user_id)
            self._users[user_id] = user.model_copy(update={"priority_weight": weight})
            return self._users[user_id].model_copy()

    async def get_audience_stats(self, user_id: int) -> AudienceStats:
        suggested = [i for i in self._ideas.values() if i.suggested_by == user_id]
        return AudienceStats(
            votes_given=sum(1 for v in self._votes.values() if v.user_id == user_id),
            ideas_suggested=len(suggested),
            ideas_approved=sum(1 for i in suggested if i.status == "approved"),
        )

    # ---- ideas ----

    async def get_ideas(self, creator_id: Optional[int] = None, status: Optional[str] = None) -> List[Idea]:
        ideas = [
            i for i in self._ideas.values()
            if (creator_id is None or i.creator_id == creator_id) and (status is None or i.status == status)
        ]
        return [i.model_copy() for i in ranking.sort_by_position(ideas)]

    async def get_idea(self, idea_id: int) -> Optional[Idea]:
        idea = self._ideas.get(idea_id)
        return idea.model_copy() if idea else None

    async def create_idea(self, creator_id: int, data: IdeaCreate) -> Idea:
        async with self._lock:
            self._require_user(creator_id)
            idea = self._new_idea(creator_id, data, "approved")
            self._recompute()
            return idea.model_copy()

    async def create_ideas_bulk(self, creator_id: int, items: List[IdeaCreate]) -> List[Idea]:
        async with self._lock:
            self._require_user(creator_id)
            created = [self._new_idea(creator_id, data, "approved") for data in items]
            self._recompute()
            return [i.model_copy() for i in created]

    async def suggest_idea(self, creator_id: int, data: IdeaCreate, suggester_id: int, cost: int = 0) -> Idea:
        async with self._lock:
            creator = self._require_user(creator_id)
            if creator.role != "creator":
                raise NotFoundError("Creator not found")
            self._require_user(suggester_id)
            if cost > 0:
                balance = self._balance(suggester_id, creator_id)
                if balance.total_points < cost:
                    raise InsufficientPointsError(
                        f"Suggesting an idea costs {cost} points",
                        required=cost,
                        available=balance.total_points,
                    )
            idea = self._new_idea(creator_id, data, "pending", suggested_by=suggester_id)
            if cost > 0:
                self._post(suggester_id, creator_id, cost, points_ledger.SPENT,
                           points_ledger.REASON_SUGGESTION, idea.id)
            return idea.model_copy()

    async def approve_idea(self, idea_id: int, reward: int = 0) -> Idea:
        async with self._lock:
            idea = self._require_idea(idea_id)
            if idea.status != "pending":
                raise InvalidTransitionError("Only pending ideas can be approved")
            idea.status = "approved"
            if idea.suggested_by and reward > 0:
                self._post(idea.suggested_by, idea.creator_id, reward, points_ledger.EARNED,
                           points_ledger.REASON_IDEA_APPROVED, idea.id)
            self._recompute()
            return idea.model_copy()

    async def get_pending_ideas(self, creator_id: int) -> List[Idea]:
        pending = [i for i in self._ideas.values() if i.creator_id == creator_id and i.status == "pending"]
        return [i.model_copy() for i in sorted(pending, key=lambda i: (i.created_at, i.id), reverse=True)]

    async def update_idea(self, idea_id: int, data: IdeaUpdate) -> Idea:
        async with self._lock:
            idea = self._require_idea(idea_id)
            idea.title = data.title
            idea.description = data.description
            return idea.model_copy()

    async def delete_idea(self, idea_id: int) -> None:
        async with self._lock:
            self._require_idea(idea_id)
            del self._ideas[idea_id]
            for vote_id in [v.id for v in self._votes.values() if v.idea_id == idea_id]:
                del self._votes[vote_id]
            self._youtube.pop(idea_id, None)
            self._recompute()

    async def get_ideas_with_positions(self, creator_id: Optional[int] = None) -> List[IdeaWithPosition]:
        result = []
        for idea in await self.get_ideas(creator_id=creator_id, status="approved"):
            suggester = self._users.get(idea.suggested_by) if idea.suggested_by else None
            result.append(IdeaWithPosition(
                id=idea.id,
                title=idea.title,
                description=idea.description,
                votes=idea.votes,
                created_at=idea.created_at,
                creator_id=idea.creator_id,
                status=idea.status,
                suggested_by=idea.suggested_by,
                suggested_by_username=suggester.username if suggester else None,
                position=ranking.position_info(idea),
            ))
        return result

    async def update_positions(self) -> None:
        async with self._lock:
            self._recompute()

    async def get_user_idea_quota(self, creator_id: int, limit: int) -> IdeaQuota:
        count = sum(
            1 for i in self._ideas.values()
            if i.creator_id == creator_id and i.status in ("approved", "pending")
        )
        return IdeaQuota(count=count, limit=limit, has_reached_limit=count >= limit)

    # ---- votes ----

    def _find_vote(self, idea_id: int, user_id: Optional[int], session_id: Optional[str]) -> Optional[Vote]:
        for vote in self._votes.values():
            if vote.idea_id != idea_id:
                continue
            if user_id is not None and vote.user_id == user_id:
                return vote
            if user_id is None and session_id and vote.session_id == session_id:
                return vote
        return None

    async def get_vote_by_user_or_session(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None
    ) -> Optional[Vote]:
        vote = self._find_vote(idea_id, user_id, session_id)
        return vote.model_copy() if vote else None

    async def create_vote(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None, reward: int = 0
    ) -> Idea:
        if user_id is None and not session_id:
            raise ValidationError("A vote needs a user or a session")
        async with self._lock:
            idea = self._require_idea(idea_id)
            if idea.status != "approved":
                raise ValidationError("Cannot vote on an idea pending approval")
            if self._find_vote(idea_id, user_id, session_id):
                raise ConflictError("You have already voted on this idea")
            vote = Vote(id=self._next_id("vote"), idea_id=idea_id, user_id=user_id,
                        session_id=session_id, voted_at=utcnow())
            self._votes[vote.id] = vote
            idea.votes += 1
            if user_id is not None and reward > 0:
                self._post(user_id, idea.creator_id, reward, points_ledger.EARNED,
                           points_ledger.REASON_VOTE, idea_id)
            self._recompute()
            return idea.model_copy()

    async def increment_vote(self, idea_id: int) -> Idea:
        async with self._lock:
            idea = self._require_idea(idea_id)
            idea.votes += 1
            self._recompute()
            return idea.model_copy()

    # ---- points ----

    async def get_user_points(self, user_id: int, creator_id: int) -> UserPoints:
        return self._balance(user_id, creator_id).model_copy()

    async def update_user_points(
        self,
        user_id: int,
        creator_id: int,
        amount: int,
        type_: str,
        reason: str,
        related_id: Optional[int] = None,
    ) -> UserPoints:
        async with self._lock:
            return self._post(user_id, creator_id, amount, type_, reason, related_id).model_copy()

    async def get_user_point_transactions(
        self, user_id: int, creator_id: Optional[int] = None, limit: int = 50
    ) -> List[PointTransaction]:
        txns = [
            t for t in self._transactions
            if t.user_id == user_id and (creator_id is None or t.creator_id == creator_id)
        ]
        txns.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return [t.model_copy() for t in txns[:limit]]

    # ---- store ----

    async def get_store_items(self, creator_id: int, active_only: bool = False) -> List[StoreItem]:
        items = [
            i for i in self._store_items.values()
            if i.creator_id == creator_id and (i.is_active or not active_only)
        ]
        return [i.model_copy() for i in sorted(items, key=lambda i: (i.created_at, i.id), reverse=True)]

    async def get_store_item(self, item_id: int) -> Optional[StoreItem]:
        item = self._store_items.get(item_id)
        return item.model_copy() if item else None

    async def create_store_item(self, creator_id: int, data: StoreItemCreate, max_active: int) -> StoreItem:
        async with self._lock:
            active = sum(1 for i in self._store_items.values() if i.creator_id == creator_id and i.is_active)
            if active >= max_active:
                raise QuotaExceededError(f"Maximum of {max_active} active store items reached")
            now = utcnow()
            item = StoreItem(
                id=self._next_id("item"),
                creator_id=creator_id,
                title=data.title,
                description=data.description,
                points_cost=data.points_cost,
                max_quantity=data.max_quantity,
                created_at=now,
                updated_at=now,
            )
            self._store_items[item.id] = item
            return item.model_copy()

    async def update_store_item(
        self, item_id: int, data: StoreItemUpdate, max_active: Optional[int] = None
    ) -> StoreItem:
        async with self._lock:
            item = self._store_items.get(item_id)
            if not item:
                raise NotFoundError("Store item not found")
            changes = drop_cleared(data.model_dump(exclude_unset=True), REQUIRED_STORE_ITEM_FIELDS)
            if max_active is not None and changes.get("is_active") and not item.is_active:
                active = sum(1 for i in self._store_items.values() if i.creator_id == item.creator_id and i.is_active)
                if active >= max_active:
                    raise QuotaExceededError(f"Maximum of {max_active} active store items reached")
            changes["updated_at"] = utcnow()
            self._store_items[item_id] = item.model_copy(update=changes)
            return self._store_items[item_id].model_copy()

    async def delete_store_item(self, item_id: int) -> None:
        async with self._lock:
            if item_id not in self._store_items:
                raise NotFoundError("Store item not found")
            del self._store_items[item_id]
            for rid in [r.id for r in self._redemptions.values() if r.store_item_id == item_id]:
                del self._redemptions[rid]

    async def get_store_redemption(self, redemption_id: int) -> Optional[StoreRedemption]:
        redemption = self._redemptions.get(redemption_id)
        return redemption.model_copy() if redemption else None

    async def get_store_redemptions(
        self, creator_id: int, limit: int = 10, offset: int = 0, status: Optional[str] = None
    ) -> Tuple[List[StoreRedemptionDetail], int]:
        matching = [
            r for r in self._redemptions.values()
            if r.creator_id == creator_id and (status is None or r.status == status)
        ]
        matching.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        page = []
        for r in matching[offset:offset + limit]:
            user = self._users.get(r.user_id)
            item = self._store_items.get(r.store_item_id)
            page.append(StoreRedemptionDetail(
                **r.model_dump(),
                user_username=user.username if user else "Unknown",
                user_email=user.email if user else "Unknown",
                store_item_title=item.title if item else "Unknown",
                store_item_description=item.description if item else "Unknown",
            ))
        return page, len(matching)

    async def create_store_redemption(self, store_item_id: int, user_id: int) -> StoreRedemption:
        async with self._lock:
            item = self._store_items.get(store_item_id)
            if not item:
                raise NotFoundError("Store item not found")
            if not item.is_available:
                raise UnavailableError("This item is no longer available")
            balance = self._balance(user_id, item.creator_id)
            if balance.total_points < item.points_cost:
                raise InsufficientPointsError(required=item.points_cost, available=balance.total_points)

            redemption = StoreRedemption(
                id=self._next_id("redemption"),
                store_item_id=store_item_id,
                user_id=user_id,
                creator_id=item.creator_id,
                points_spent=item.points_cost,
                status="pending",
                created_at=utcnow(),
            )
            self._post(user_id, item.creator_id, item.points_cost, points_ledger.SPENT,
                       points_ledger.REASON_STORE_REDEMPTION, store_item_id)
            self._redemptions[redemption.id] = redemption
            item.current_quantity += 1
            logger.info(f"Redemption {redemption.id}: user={user_id} item={store_item_id} cost={item.points_cost}")
            return redemption.model_copy()

    async def update_redemption_status(self, redemption_id: int, new_status: str, actor_id: int) -> StoreRedemption:
        async with self._lock:
            redemption = self._redemptions.get(redemption_id)
            if not redemption:
                raise NotFoundError("Redemption not found")
            item = self._store_items.get(redemption.store_item_id)
            owner_id = item.creator_id if item else redemption.creator_id
            if owner_id != actor_id:
                raise ForbiddenError("Only the creator can update this redemption")
            if not (redemption.status == "pending" and new_status == "completed"):
                raise InvalidTransitionError(f"Cannot move redemption from {redemption.status} to {new_status}")
            redemption.status = "completed"
            redemption.completed_at = utcnow()
            return redemption.model_copy()

    # ---- public links ----

    async def create_public_link(self, creator_id: int, token: str, expires_at: Optional[datetime] = None) -> PublicLink:
        async with self._lock:
            if any(link.token == token for link in self._links.values()):
                raise ConflictError("Token already in use")
            link = PublicLink(
                id=self._next_id("link"),
                token=token,
                creator_id=creator_id,
                is_active=True,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self._links[link.id] = link
            return link.model_copy()

    async def get_public_link(self, link_id: int) -> Optional[PublicLink]:
        link = self._links.get(link_id)
        return link.model_copy() if link else None

    async def get_public_link_by_token(self, token: str) -> Optional[PublicLink]:
        for link in self._links.values():
            if link.token == token:
                return link.model_copy()
        return None

    async def get_user_public_links(self, creator_id: int) -> List[PublicLink]:
        links = [link for link in self._links.values() if link.creator_id == creator_id]
        return [link.model_copy() for link in sorted(links, key=lambda l: (l.created_at, l.id), reverse=True)]

    async def toggle_public_link_status(self, link_id: int, is_active: bool) -> PublicLink:
        async with self._lock:
            link = self._links.get(link_id)
            if not link:
                raise NotFoundError("Public link not found")
            link.is_active = is_active
            return link.model_copy()

    async def delete_public_link(self, link_id: int) -> None:
        async with self._lock:
            if self._links.pop(link_id, None) is None:
                raise NotFoundError("Public link not found")

    # ---- youtube scores ----

    async def get_youtube_score(self, idea_id: int) -> Optional[YoutubeScore]:
        score = self._youtube.get(idea_id)
        return score.model_copy(deep=True) if score else None

    async def save_youtube_score(self, score: YoutubeScore) -> YoutubeScore:
        async with self._lock:
            self._require_idea(score.idea_id)
            self._youtube[score.idea_id] = score.model_copy(deep=True)
            return score

    # ---- youtube usage ----

    async def get_youtube_usage(self, user_id: int, day: date) -> YoutubeUsage:
        usage = self._youtube_usage.get((user_id, day))
        return usage.model_copy() if usage else YoutubeUsage(user_id=user_id, day=day)

    async def get_youtube_units_used(self, day: date) -> int:
        return sum(u.units for (_, d), u in self._youtube_usage.items() if d == day)

    async def record_youtube_analysis(
        self, user_id: int, day: date, units: int, user_limit: int, daily_units: int
    ) -> YoutubeUsage:
        async with self._lock:
            usage = await self.get_youtube_usage(user_id, day)
            check_youtube_limits(usage.analyses, await self.get_youtube_units_used(day), units, user_limit, daily_units)
            usage.analyses += 1
            usage.units += units
            self._youtube_usage[(user_id, day)] = usage
            return usage.model_copy()
