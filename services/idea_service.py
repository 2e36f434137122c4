"""Idea lifecycle: creation, suggestions, moderation and voting."""
from typing import Any, Dict, List, Optional
import logging

from core.config import settings
from core.errors import ForbiddenError, InvalidTransitionError, NotFoundError, QuotaExceededError
from db.storage.base import Storage
from schemas.idea_schema import Idea, IdeaCreate, IdeaQuota, IdeaUpdate, IdeaWithPosition
from schemas.user_schema import UserInDB
from services import access_policy
from services.user_service import get_creator_by_username, to_public
from utils.timing import timeit

logger = logging.getLogger(__name__)


def require_creator(user: UserInDB, action: str = "do this") -> None:
    if user.role != "creator":
        raise ForbiddenError(f"Only creators can {action}")


async def get_idea_or_404(idea_id: int, storage: Storage) -> Idea:
    idea = await storage.get_idea(idea_id)
    if not idea:
        raise NotFoundError("Idea not found")
    return idea


async def get_owned_idea(current_user: UserInDB, idea_id: int, storage: Storage) -> Idea:
    idea = await get_idea_or_404(idea_id, storage)
    if idea.creator_id != current_user.id:
        logger.warning(f"User {current_user.id} tried to modify idea {idea_id} owned by {idea.creator_id}")
        raise ForbiddenError("You can only manage your own ideas")
    return idea


async def list_leaderboard(storage: Storage, creator_id: Optional[int] = None) -> List[IdeaWithPosition]:
    return await storage.get_ideas_with_positions(creator_id=creator_id)


async def get_creator_page(username: str, storage: Storage, viewer: Optional[UserInDB] = None) -> Dict[str, Any]:
    """Creator profile plus leaderboard; ``voted_idea_ids`` lists what the viewer already voted on"""
    creator = await get_creator_by_username(username, storage)
    ideas = await storage.get_ideas_with_positions(creator_id=creator.id)
    voted = []
    if viewer is not None:
        for idea in ideas:
            if await storage.get_vote_by_user_or_session(idea.id, user_id=viewer.id):
                voted.append(idea.id)
    return {"creator": to_public(creator), "ideas": ideas, "voted_idea_ids": voted}


async def get_idea_quota(current_user: UserInDB, storage: Storage) -> IdeaQuota:
    quota = await storage.get_user_idea_quota(current_user.id, settings.FREE_IDEA_LIMIT)
    if access_policy.has_active_premium_access(current_user):
        return quota.model_copy(update={"has_reached_limit": False})
    return quota


@timeit()
async def create_idea(current_user: UserInDB, data: IdeaCreate, storage: Storage) -> Idea:
    require_creator(current_user, "create ideas")
    if not access_policy.has_active_premium_access(current_user):
        quota = await storage.get_user_idea_quota(current_user.id, settings.FREE_IDEA_LIMIT)
        if quota.has_reached_limit:
            logger.warning(f"Idea quota reached for creator {current_user.id}: {quota.count}/{quota.limit}")
            raise QuotaExceededError(
                f"Free plan is limited to {quota.limit} ideas. Upgrade to premium for unlimited ideas."
            )
    idea = await storage.create_idea(current_user.id, data)
    logger.info(f"Idea {idea.id} created by creator {current_user.id}")
    return idea


async def update_idea(current_user: UserInDB, idea_id: int, data: IdeaUpdate, storage: Storage) -> Idea:
    idea = await get_owned_idea(current_user, idea_id, storage)
    if idea.votes > settings.MAX_VOTES_FOR_EDIT:
        raise ForbiddenError(f"Ideas with more than {settings.MAX_VOTES_FOR_EDIT} votes can no longer be edited")
    return await storage.update_idea(idea_id, data)


async def delete_idea(current_user: UserInDB, idea_id: int, storage: Storage) -> None:
    await get_owned_idea(current_user, idea_id, storage)
    await storage.delete_idea(idea_id)
    logger.info(f"Idea {idea_id} deleted by creator {current_user.id}")


@timeit()
async def vote_for_idea(current_user: UserInDB, idea_id: int, storage: Storage) -> Idea:
    idea = await storage.create_vote(idea_id, user_id=current_user.id, reward=settings.POINTS_PER_VOTE)
    logger.info(f"Vote cast: user={current_user.id} idea={idea_id} votes={idea.votes} position={idea.current_position}")
    return idea


@timeit()
async def suggest_idea(current_user: UserInDB, creator_id: int, data: IdeaCreate, storage: Storage) -> Idea:
    if creator_id == current_user.id:
        raise ForbiddenError("You cannot suggest ideas to yourself")
    creator = await storage.get_user(creator_id)
    if not creator or creator.role != "creator":
        raise NotFoundError("Creator not found")
    idea = await storage.suggest_idea(creator_id, data, current_user.id, cost=settings.SUGGESTION_COST)
    logger.info(f"Idea {idea.id} suggested by user {current_user.id} to creator {creator_id}")
    return idea


async def get_pending_ideas(current_user: UserInDB, storage: Storage) -> List[Idea]:
    require_creator(current_user, "review suggestions")
    return await storage.get_pending_ideas(current_user.id)


@timeit()
async def approve_idea(current_user: UserInDB, idea_id: int, storage: Storage) -> Idea:
    await get_owned_idea(current_user, idea_id, storage)
    idea = await storage.approve_idea(idea_id, reward=settings.POINTS_PER_APPROVED_SUGGESTION)
    logger.info(f"Idea {idea_id} approved by creator {current_user.id}")
    return idea


async def reject_idea(current_user: UserInDB, idea_id: int, storage: Storage) -> None:
    """Rejecting a suggestion removes it outright; there is no rejected state"""
    idea = await get_owned_idea(current_user, idea_id, storage)
    if idea.status != "pending":
        raise InvalidTransitionError("Only pending ideas can be rejected")
    await storage.delete_idea(idea_id)
    logger.info(f"Suggestion {idea_id} rejected by creator {current_user.id}")
