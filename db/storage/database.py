"""SQLAlchemy (async) storage.

Each mutating call opens one session and one ``session.begin()`` block; the
write, its point postings and the ranking recompute commit together or roll
back together. Balance and store item rows are read ``FOR UPDATE`` where the
dialect supports it, and the ``(idea_id, user_id)`` unique constraint backs
the duplicate vote check.

Lock order: idea rows (all of them, by id) first, then the store item, then
the balance row. On SQLite, sessions run one at a time.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

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
from db.models.idea import Idea as IdeaModel, Vote as VoteModel
from db.models.points import PointTransaction as PointTransactionModel, UserPoints as UserPointsModel
from db.models.public_link import PublicLink as PublicLinkModel
from db.models.store import StoreItem as StoreItemModel, StoreRedemption as StoreRedemptionModel
from db.models.user import User as UserModel
from db.models.youtube_score import YoutubeScore as YoutubeScoreModel
from db.models.youtube_usage import YoutubeUsage as YoutubeUsageModel
from db.session import SessionLocal
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


class DatabaseStorage(Storage):
    def __init__(self, session_factory=None, ranking_scope: Optional[str] = None):
        self._session_factory = session_factory or SessionLocal
        self.ranking_scope = ranking_scope or settings.RANKING_SCOPE
        # SQLite has one writer and, in memory, one shared connection: run sessions one at a time
        bind = getattr(self._session_factory, "kw", {}).get("bind")
        is_sqlite = bind is not None and bind.dialect.name == "sqlite"
        self._serial = asyncio.Lock() if is_sqlite else nullcontext()

    @asynccontextmanager
    async def _session(self):
        async with self._serial:
            async with self._session_factory() as session:
                yield session

    @asynccontextmanager
    async def _transaction(self):
        async with self._session() as session:
            async with session.begin():
                yield session

    # ---- internal helpers (run inside an open transaction) ----

    async def _require(self, session, model, pk, label: str, for_update: bool = False):
        stmt = select(model).where(model.id == pk)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"{label} not found")
        return row

    async def _lock_ranking(self, session) -> None:
        """Lock every idea row in id order.

        Transactions that insert or re-rank ideas take this before any other row
        lock, so they queue behind each other instead of deadlocking.
        """
        await session.execute(select(IdeaModel.id).order_by(IdeaModel.id).with_for_update())

    async def _recompute(self, session) -> None:
        rows = (await session.execute(select(IdeaModel).order_by(IdeaModel.id).with_for_update())).scalars().all()
        ranking.apply_positions(list(rows), self.ranking_scope)
        await session.flush()

    async def _locked_balance(self, session, user_id: int, creator_id: int, create: bool = True):
        stmt = (
            select(UserPointsModel)
            .where(UserPointsModel.user_id == user_id, UserPointsModel.creator_id == creator_id)
            .with_for_update()
        )
        balance = (await session.execute(stmt)).scalar_one_or_none()
        if balance is None and create:
            try:
                async with session.begin_nested():
                    balance = UserPointsModel(
                        user_id=user_id, creator_id=creator_id, total_points=0, points_earned=0, points_spent=0
                    )
                    session.add(balance)
            except IntegrityError:
                # A concurrent transaction inserted the row first; lock theirs
                logger.info(f"Balance row for user={user_id} creator={creator_id} created concurrently")
                balance = (await session.execute(stmt)).scalar_one()
        return balance

    async def _post(self, session, user_id: int, creator_id: int, amount: int, type_: str, reason: str,
                    related_id: Optional[int] = None):
        points_ledger.validate_posting(amount, type_)
        balance = await self._locked_balance(session, user_id, creator_id)
        points_ledger.apply_posting(balance, amount, type_)
        session.add(PointTransactionModel(
            user_id=user_id,
            creator_id=creator_id,
            type=type_,
            amount=amount,
            reason=reason,
            related_id=related_id,
            created_at=utcnow(),
        ))
        await session.flush()
        logger.info(f"Points {type_}: user={user_id} creator={creator_id} amount={amount} reason={reason}")
        return balance

    async def _first(self, stmt, schema):
        async with self._session() as session:
            row = (await session.execute(stmt)).scalars().first()
            return schema.model_validate(row) if row else None

    async def _all(self, stmt, schema) -> list:
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [schema.model_validate(r) for r in rows]

    async def _count(self, stmt) -> int:
        async with self._session() as session:
            return int((await session.execute(stmt)).scalar() or 0)

    # ---- users ----

    async def get_user(self, user_id: int) -> Optional[UserInDB]:
        return await self._first(select(UserModel).where(UserModel.id == user_id), UserInDB)

    async def get_user_by_username(self, username: str) -> Optional[UserInDB]:
        stmt = select(UserModel).where(func.lower(UserModel.username) == (username or "").lower())
        return await self._first(stmt, UserInDB)

    async def get_user_by_email(self, email: str) -> Optional[UserInDB]:
        stmt = select(UserModel).where(func.lower(UserModel.email) == (email or "").lower())
        return await self._first(stmt, UserInDB)

    async def get_user_by_stripe_customer_id(self, customer_id: str) -> Optional[UserInDB]:
        return await self._first(select(UserModel).where(UserModel.stripe_customer_id == customer_id), UserInDB)

    async def create_user(self, username: str, email: str, hashed_password: str, role: str = "audience") -> UserInDB:
        if await self.get_user_by_username(username):
            raise ConflictError("Username already registered")
        if await self.get_user_by_email(email):
            raise ConflictError("Email already registered")
        try:
            async with self._transaction() as session:
                user = UserModel(
                    username=username,
                    email=email,
                    hashed_password=hashed_password,
                    role=role,
                    created_at=utcnow(),
                )
                session.add(user)
                await session.flush()
                return UserInDB.model_validate(user)
        except IntegrityError as e:
            logger.warning(f"User insert conflict for {username}: {e.orig}")
            raise ConflictError("Username or email already registered")

    async def _update_user(self, user_id: int, changes: Dict[str, Any]) -> UserInDB:
        async with self._transaction() as session:
            user = await self._require(session, UserModel, user_id, "User", for_update=True)
            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            await session.flush()
            return UserInDB.model_validate(user)

    async def update_user_profile(self, user_id: int, data: Dict[str, Any]) -> UserInDB:
        changes = drop_cleared({k: v for k, v in data.items() if k in PROFILE_FIELDS}, REQUIRED_PROFILE_FIELDS)
        if "email" in changes:
            other = await self.get_user_by_email(changes["email"])
            if other and other.id != user_id:
                raise ConflictError("Email already registered")
        return await self._update_user(user_id, changes)

    async def update_user_password(self, user_id: int, hashed_password: str) -> UserInDB:
        return await self._update_user(user_id, {"hashed_password": hashed_password})

    async def update_user_subscription(self, user_id: int, data: Dict[str, Any]) -> UserInDB:
        changes = {k: v for k, v in data.items() if k in SUBSCRIPTION_FIELDS}
        if data.get("has_used_trial") or changes.get("subscription_status") == "trial":
            changes["has_used_trial"] = True
        return await self._update_user(user_id, changes)

    async def start_user_trial(self, user_id: int, trial_days: int, now: Optional[datetime] = None) -> UserInDB:
        now = now or utcnow()
        async with self._transaction() as session:
            user = await self._require(session, UserModel, user_id, "User", for_update=True)
            if user.has_used_trial:
                raise ConflictError("Trial already used")
            user.subscription_status = "trial"
            user.has_used_trial = True
            user.trial_start_date = now
            user.trial_end_date = now + timedelta(days=trial_days)
            user.updated_at = now
            await session.flush()
            return UserInDB.model_validate(user)

    async def update_priority_weight(self, user_id: int, weight: int) -> UserInDB:
        return await self._update_user(user_id, {"priority_weight": weight})

    async def get_audience_stats(self, user_id: int) -> AudienceStats:
        suggested = select(func.count(IdeaModel.id)).where(IdeaModel.suggested_by == user_id)
        return AudienceStats(
            votes_given=await self._count(select(func.count(VoteModel.id)).where(VoteModel.user_id == user_id)),
            ideas_suggested=await self._count(suggested),
            ideas_approved=await self._count(suggested.where(IdeaModel.status == "approved")),
        )

    # ---- ideas ----

    def _ideas_query(self, creator_id: Optional[int] = None, status: Optional[str] = None):
        stmt = select(IdeaModel)
        if creator_id is not None:
            stmt = stmt.where(IdeaModel.creator_id == creator_id)
        if status is not None:
            stmt = stmt.where(IdeaModel.status == status)
        return stmt

    async def get_ideas(self, creator_id: Optional[int] = None, status: Optional[str] = None) -> List[Idea]:
        ideas = await self._all(self._ideas_query(creator_id, status), Idea)
        return ranking.sort_by_position(ideas)

    async def get_idea(self, idea_id: int) -> Optional[Idea]:
        return await self._first(select(IdeaModel).where(IdeaModel.id == idea_id), Idea)

    def _new_idea(self, session, creator_id: int, data: IdeaCreate, status: str,
                  suggested_by: Optional[int] = None) -> IdeaModel:
        now = utcnow()
        idea = IdeaModel(
            title=data.title,
            description=data.description,
            votes=0,
            creator_id=creator_id,
            suggested_by=suggested_by,
            status=status,
            created_at=now,
            last_position_update=now,
        )
        session.add(idea)
        return idea

    async def create_idea(self, creator_id: int, data: IdeaCreate) -> Idea:
        return (await self.create_ideas_bulk(creator_id, [data]))[0]

    async def create_ideas_bulk(self, creator_id: int, items: List[IdeaCreate]) -> List[Idea]:
        async with self._transaction() as session:
            await self._lock_ranking(session)
            await self._require(session, UserModel, creator_id, "User")
            created = [self._new_idea(session, creator_id, data, "approved") for data in items]
            await session.flush()
            await self._recompute(session)
            return [Idea.model_validate(i) for i in created]

    async def suggest_idea(self, creator_id: int, data: IdeaCreate, suggester_id: int, cost: int = 0) -> Idea:
        async with self._transaction() as session:
            await self._lock_ranking(session)
            creator = await self._require(session, UserModel, creator_id, "Creator")
            if creator.role != "creator":
                raise NotFoundError("Creator not found")
            await self._require(session, UserModel, suggester_id, "User")
            if cost > 0:
                balance = await self._locked_balance(session, suggester_id, creator_id, create=False)
                available = balance.total_points if balance else 0
                if available < cost:
                    raise InsufficientPointsError(
                        f"Suggesting an idea costs {cost} points", required=cost, available=available
                    )
            idea = self._new_idea(session, creator_id, data, "pending", suggested_by=suggester_id)
            await session.flush()
            if cost > 0:
                await self._post(session, suggester_id, creator_id, cost, points_ledger.SPENT,
                                 points_ledger.REASON_SUGGESTION, idea.id)
            return Idea.model_validate(idea)

    async def approve_idea(self, idea_id: int, reward: int = 0) -> Idea:
        async with self._transaction() as session:
            await self._lock_ranking(session)
            idea = await self._require(session, IdeaModel, idea_id, "Idea", for_update=True)
            if idea.status != "pending":
                raise InvalidTransitionError("Only pending ideas can be approved")
            idea.status = "approved"
            if idea.suggested_by and reward > 0:
                await self._post(session, idea.suggested_by, idea.creator_id, reward, points_ledger.EARNED,
                                 points_ledger.REASON_IDEA_APPROVED, idea.id)
            await self._recompute(session)
            return Idea.model_validate(idea)

    async def get_pending_ideas(self, creator_id: int) -> List[Idea]:
        stmt = self._ideas_query(creator_id, "pending").order_by(IdeaModel.created_at.desc(), IdeaModel.id.desc())
        return await self._all(stmt, Idea)

    async def update_idea(self, idea_id: int, data: IdeaUpdate) -> Idea:
        async with self._transaction() as session:
            idea = await self._require(session, IdeaModel, idea_id, "Idea", for_update=True)
            idea.title = data.title
            idea.description = data.description
            await session.flush()
            return Idea.model_validate(idea)

    async def delete_idea(self, idea_id: int) -> None:
        async with self._transaction() as session:
            await self._lock_ranking(session)
            idea = await self._require(session, IdeaModel, idea_id, "Idea")
            await session.execute(delete(VoteModel).where(VoteModel.idea_id == idea_id))
            await session.execute(delete(YoutubeScoreModel).where(YoutubeScoreModel.idea_id == idea_id))
            await session.delete(idea)
            await session.flush()
            await self._recompute(session)

    async def get_ideas_with_positions(self, creator_id: Optional[int] = None) -> List[IdeaWithPosition]:
        suggester = aliased(UserModel)
        stmt = (
            self._ideas_query(creator_id, "approved")
            .add_columns(suggester.username)
            .outerjoin(suggester, suggester.id == IdeaModel.suggested_by)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()
        names = {row.id: name for row, name in rows}
        result = []
        for row in ranking.sort_by_position(r for r, _ in rows):
            suggester_name = names[row.id]
            result.append(IdeaWithPosition(
                id=row.id,
                title=row.title,
                description=row.description,
                votes=row.votes,
                created_at=row.created_at,
                creator_id=row.creator_id,
                status=row.status,
                suggested_by=row.suggested_by,
                suggested_by_username=suggester_name,
                position=ranking.position_info(row),
            ))
        return result

    async def update_positions(self) -> None:
        async with self._transaction() as session:
            await self._recompute(session)

    async def get_user_idea_quota(self, creator_id: int, limit: int) -> IdeaQuota:
        count = await self._count(
            select(func.count(IdeaModel.id)).where(
                IdeaModel.creator_id == creator_id,
                IdeaModel.status.in_(("approved", "pending")),
            )
        )
        return IdeaQuota(count=count, limit=limit, has_reached_limit=count >= limit)

    # ---- votes ----

    def _vote_query(self, idea_id: int, user_id: Optional[int], session_id: Optional[str]):
        stmt = select(VoteModel).where(VoteModel.idea_id == idea_id)
        if user_id is not None:
            return stmt.where(VoteModel.user_id == user_id)
        return stmt.where(VoteModel.user_id.is_(None), VoteModel.session_id == session_id)

    async def get_vote_by_user_or_session(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None
    ) -> Optional[Vote]:
        if user_id is None and not session_id:
            return None
        return await self._first(self._vote_query(idea_id, user_id, session_id), Vote)

    async def create_vote(
        self, idea_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None, reward: int = 0
    ) -> Idea:
        if user_id is None and not session_id:
            raise ValidationError("A vote needs a user or a session")
        async with self._transaction() as session:
            await self._lock_ranking(session)
            idea = await self._require(session, IdeaModel, idea_id, "Idea", for_update=True)
            if idea.status != "approved":
                raise ValidationError("Cannot vote on an idea pending approval")
            existing = (await session.execute(self._vote_query(idea_id, user_id, session_id))).scalars().first()
            if existing:
                raise ConflictError("You have already voted on this idea")
            try:
                async with session.begin_nested():
                    session.add(VoteModel(idea_id=idea_id, user_id=user_id, session_id=session_id,
                                          voted_at=utcnow()))
            except IntegrityError as e:
                logger.warning(f"Duplicate vote rejected by constraint: idea={idea_id} user={user_id}: {e.orig}")
                raise ConflictError("You have already voted on this idea")
            idea.votes = idea.votes + 1
            await session.flush()
            if user_id is not None and reward > 0:
                await self._post(session, user_id, idea.creator_id, reward, points_ledger.EARNED,
                                 points_ledger.REASON_VOTE, idea_id)
            await self._recompute(session)
            return Idea.model_validate(idea)

    async def increment_vote(self, idea_id: int) -> Idea:
        async with self._transaction() as session:
            await self._lock_ranking(session)
            idea = await self._require(session, IdeaModel, idea_id, "Idea", for_update=True)
            idea.votes = idea.votes + 1
            await self._recompute(session)
            return Idea.model_validate(idea)

    # ---- points ----

    async def get_user_points(self, user_id: int, creator_id: int) -> UserPoints:
        stmt = select(UserPointsModel).where(
            UserPointsModel.user_id == user_id, UserPointsModel.creator_id == creator_id
        )
        points = await self._first(stmt, UserPoints)
        return points or UserPoints(user_id=user_id, creator_id=creator_id)

    async def update_user_points(
        self,
        user_id: int,
        creator_id: int,
        amount: int,
        type_: str,
        reason: str,
        related_id: Optional[int] = None,
    ) -> UserPoints:
        async with self._transaction() as session:
            balance = await self._post(session, user_id, creator_id, amount, type_, reason, related_id)
            return UserPoints.model_validate(balance)

    async def get_user_point_transactions(
        self, user_id: int, creator_id: Optional[int] = None, limit: int = 50
    ) -> List[PointTransaction]:
        stmt = select(PointTransactionModel).where(PointTransactionModel.user_id == user_id)
        if creator_id is not None:
            stmt = stmt.where(PointTransactionModel.creator_id == creator_id)
        stmt = stmt.order_by(PointTransactionModel.created_at.desc(), PointTransactionModel.id.desc()).limit(limit)
        return await self._all(stmt, PointTransaction)

    # ---- store ----

    async def get_store_items(self, creator_id: int, active_only: bool = False) -> List[StoreItem]:
        stmt = select(StoreItemModel).where(StoreItemModel.creator_id == creator_id)
        if active_only:
            stmt = stmt.where(StoreItemModel.is_active.is_(True))
        stmt = stmt.order_by(StoreItemModel.created_at.desc(), StoreItemModel.id.desc())
        return await self._all(stmt, StoreItem)

    async def get_store_item(self, item_id: int) -> Optional[StoreItem]:
        return await self._first(select(StoreItemModel).where(StoreItemModel.id == item_id), StoreItem)

    async def create_store_item(self, creator_id: int, data: StoreItemCreate, max_active: int) -> StoreItem:
        async with self._transaction() as session:
            # Lock the creator row so two concurrent creates cannot both pass the count
            await self._require(session, UserModel, creator_id, "User", for_update=True)
            if await self._active_item_count(session, creator_id) >= max_active:
                raise QuotaExceededError(f"Maximum of {max_active} active store items reached")
            now = utcnow()
            item = StoreItemModel(
                creator_id=creator_id,
                title=data.title,
                description=data.description,
                points_cost=data.points_cost,
                max_quantity=data.max_quantity,
                current_quantity=0,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            session.add(item)
            await session.flush()
            return StoreItem.model_validate(item)

    async def _active_item_count(self, session, creator_id: int) -> int:
        return (await session.execute(
            select(func.count(StoreItemModel.id)).where(
                StoreItemModel.creator_id == creator_id, StoreItemModel.is_active.is_(True)
            )
        )).scalar() or 0

    async def update_store_item(
        self, item_id: int, data: StoreItemUpdate, max_active: Optional[int] = None
    ) -> StoreItem:
        async with self._transaction() as session:
            item = await self._require(session, StoreItemModel, item_id, "Store item", for_update=True)
            changes = drop_cleared(data.model_dump(exclude_unset=True), REQUIRED_STORE_ITEM_FIELDS)
            if max_active is not None and changes.get("is_active") and not item.is_active:
                await self._require(session, UserModel, item.creator_id, "User", for_update=True)
                if await self._active_item_count(session, item.creator_id) >= max_active:
                    raise QuotaExceededError(f"Maximum of {max_active} active store items reached")
            for key, value in changes.items():
                setattr(item, key, value)
            item.updated_at = utcnow()
            await session.flush()
            return StoreItem.model_validate(item)

    async def delete_store_item(self, item_id: int) -> None:
        async with self._transaction() as session:
            item = await self._require(session, StoreItemModel, item_id, "Store item")
            await session.execute(delete(StoreRedemptionModel).where(StoreRedemptionModel.store_item_id == item_id))
            await session.delete(item)

    async def get_store_redemption(self, redemption_id: int) -> Optional[StoreRedemption]:
        stmt = select(StoreRedemptionModel).where(StoreRedemptionModel.id == redemption_id)
        return await self._first(stmt, StoreRedemption)

    async def get_store_redemptions(
        self, creator_id: int, limit: int = 10, offset: int = 0, status: Optional[str] = None
    ) -> Tuple[List[StoreRedemptionDetail], int]:
        filters = [StoreRedemptionModel.creator_id == creator_id]
        if status is not None:
            filters.append(StoreRedemptionModel.status == status)
        total = await self._count(select(func.count(StoreRedemptionModel.id)).where(*filters))
        stmt = (
            select(
                StoreRedemptionModel,
                UserModel.username,
                UserModel.email,
                StoreItemModel.title,
                StoreItemModel.description,
            )
            .outerjoin(UserModel, UserModel.id == StoreRedemptionModel.user_id)
            .outerjoin(StoreItemModel, StoreItemModel.id == StoreRedemptionModel.store_item_id)
            .where(*filters)
            .order_by(StoreRedemptionModel.created_at.desc(), StoreRedemptionModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()
        page = []
        for redemption, username, email, title, description in rows:
            page.append(StoreRedemptionDetail(
                **StoreRedemption.model_validate(redemption).model_dump(),
                user_username=username or "Unknown",
                user_email=email or "Unknown",
                store_item_title=title or "Unknown",
                store_item_description=description if description is not None else "Unknown",
            ))
        return page, total

    async def create_store_redemption(self, store_item_id: int, user_id: int) -> StoreRedemption:
        async with self._transaction() as session:
            item = await self._require(session, StoreItemModel, store_item_id, "Store item", for_update=True)
            if not StoreItem.model_validate(item).is_available:
                raise UnavailableError("This item is no longer available")
            balance = await self._locked_balance(session, user_id, item.creator_id, create=False)
            available = balance.total_points if balance else 0
            if available < item.points_cost:
                raise InsufficientPointsError(required=item.points_cost, available=available)

            redemption = StoreRedemptionModel(
                store_item_id=store_item_id,
                user_id=user_id,
                creator_id=item.creator_id,
                points_spent=item.points_cost,
                status="pending",
                created_at=utcnow(),
            )
            session.add(redemption)
            await self._post(session, user_id, item.creator_id, item.points_cost, points_ledger.SPENT,
                             points_ledger.REASON_STORE_REDEMPTION, store_item_id)
            item.current_quantity = item.current_quantity + 1
            await session.flush()
            logger.info(f"Redemption {redemption.id}: user={user_id} item={store_item_id} cost={item.points_cost}")
            return StoreRedemption.model_validate(redemption)

    async def update_redemption_status(self, redemption_id: int, new_status: str, actor_id: int) -> StoreRedemption:
        async with self._transaction() as session:
            redemption = await self._require(
                session, StoreRedemptionModel, redemption_id, "Redemption", for_update=True
            )
            item = await session.get(StoreItemModel, redemption.store_item_id)
            owner_id = item.creator_id if item else redemption.creator_id
            if owner_id != actor_id:
                raise ForbiddenError("Only the creator can update this redemption")
            if not (redemption.status == "pending" and new_status == "completed"):
                raise InvalidTransitionError(
                    f"Cannot move redemption from {redemption.status} to {new_status}"
                )
            redemption.status = "completed"
            redemption.completed_at = utcnow()
            await session.flush()
            return StoreRedemption.model_validate(redemption)

    # ---- public links ----

    async def create_public_link(self, creator_id: int, token: str, expires_at: Optional[datetime] = None) -> PublicLink:
        try:
            async with self._transaction() as session:
                link = PublicLinkModel(
                    token=token,
                    creator_id=creator_id,
                    is_active=True,
                    expires_at=expires_at,
                    created_at=utcnow(),
                )
                session.add(link)
                await session.flush()
                return PublicLink.model_validate(link)
        except IntegrityError:
            raise ConflictError("Token already in use")

    async def get_public_link(self, link_id: int) -> Optional[PublicLink]:
        return await self._first(select(PublicLinkModel).where(PublicLinkModel.id == link_id), PublicLink)

    async def get_public_link_by_token(self, token: str) -> Optional[PublicLink]:
        return await self._first(select(PublicLinkModel).where(PublicLinkModel.token == token), PublicLink)

    async def get_user_public_links(self, creator_id: int) -> List[PublicLink]:
        stmt = (
            select(PublicLinkModel)
            .where(PublicLinkModel.creator_id == creator_id)
            .order_by(PublicLinkModel.created_at.desc(), PublicLinkModel.id.desc())
        )
        return await self._all(stmt, PublicLink)

    async def toggle_public_link_status(self, link_id: int, is_active: bool) -> PublicLink:
        async with self._transaction() as session:
            link = await self._require(session, PublicLinkModel, link_id, "Public link", for_update=True)
            link.is_active = is_active
            await session.flush()
            return PublicLink.model_validate(link)

    async def delete_public_link(self, link_id: int) -> None:
        async with self._transaction() as session:
            link = await self._require(session, PublicLinkModel, link_id, "Public link")
            await session.delete(link)

    # ---- youtube scores ----

    async def get_youtube_score(self, idea_id: int) -> Optional[YoutubeScore]:
        stmt = select(YoutubeScoreModel).where(YoutubeScoreModel.idea_id == idea_id)
        return await self._first(stmt, YoutubeScore)

    async def save_youtube_score(self, score: YoutubeScore) -> YoutubeScore:
        values = score.model_dump()
        async with self._transaction() as session:
            await self._require(session, IdeaModel, score.idea_id, "Idea")
            row = (await session.execute(
                select(YoutubeScoreModel).where(YoutubeScoreModel.idea_id == score.idea_id).with_for_update()
            )).scalar_one_or_none()
            if row is None:
                row = YoutubeScoreModel(**values)
                session.add(row)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            await session.flush()
            return YoutubeScore.model_validate(row)

    # ---- youtube usage ----

    def _usage_query(self, user_id: int, day: date):
        return select(YoutubeUsageModel).where(YoutubeUsageModel.user_id == user_id, YoutubeUsageModel.day == day)

    async def get_youtube_usage(self, user_id: int, day: date) -> YoutubeUsage:
        usage = await self._first(self._usage_query(user_id, day), YoutubeUsage)
        return usage or YoutubeUsage(user_id=user_id, day=day)

    async def get_youtube_units_used(self, day: date) -> int:
        return await self._count(select(func.sum(YoutubeUsageModel.units)).where(YoutubeUsageModel.day == day))

    async def _ensure_usage_row(self, user_id: int, day: date) -> None:
        # Own short transaction, so the locked check below never inserts
        async with self._transaction() as session:
            if (await session.execute(self._usage_query(user_id, day))).scalar_one_or_none():
                return
            try:
                async with session.begin_nested():
                    session.add(YoutubeUsageModel(user_id=user_id, day=day, analyses=0, units=0))
            except IntegrityError:
                logger.info(f"YouTube usage row for user={user_id} day={day} created concurrently")

    async def record_youtube_analysis(
        self, user_id: int, day: date, units: int, user_limit: int, daily_units: int
    ) -> YoutubeUsage:
        await self._ensure_usage_row(user_id, day)
        async with self._transaction() as session:
            rows = (await session.execute(
                select(YoutubeUsageModel)
                .where(YoutubeUsageModel.day == day)
                .order_by(YoutubeUsageModel.id)
                .with_for_update()
            )).scalars().all()
            usage = next(r for r in rows if r.user_id == user_id)
            check_youtube_limits(usage.analyses, sum(r.units for r in rows), units, user_limit, daily_units)
            usage.analyses = usage.analyses + 1
            usage.units = usage.units + units
            await session.flush()
            return YoutubeUsage.model_validate(usage)
