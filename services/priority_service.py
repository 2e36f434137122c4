"""Blend audience votes with YouTube opportunity into one priority score per idea."""
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from core.config import settings
from db.storage.base import Storage
from schemas.user_schema import UserInDB
from schemas.youtube_schema import IdeaWithPriority, PriorityScore, YoutubeScore
from services.idea_service import require_creator
from services.youtube_service import round_half_up
from utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 55
MIN_WEIGHT = 30
MAX_WEIGHT = 70
STALE_AFTER = timedelta(hours=24)
STALE_DISCOUNT = 0.8


def clamp_weight(weight: Optional[int]) -> int:
    if weight is None:
        return DEFAULT_WEIGHT
    return max(MIN_WEIGHT, min(MAX_WEIGHT, int(weight)))


def normalize_votes(votes: int, max_votes: int) -> int:
    if max_votes <= 0:
        return 0
    return round_half_up(votes / max_votes * 100)


def blend(vote_score: int, opportunity_score: Optional[int], weight: int) -> int:
    if opportunity_score is None:
        return vote_score
    w = weight / 100
    return round_half_up(w * vote_score + (1 - w) * opportunity_score)


def score_idea(idea_id: int, votes: int, max_votes: int, weight: int,
               youtube: Optional[YoutubeScore] = None, now: Optional[datetime] = None) -> PriorityScore:
    now = now or utcnow()
    vote_score = normalize_votes(votes, max_votes)
    opportunity = youtube.opportunity_score if youtube else None
    is_stale = bool(youtube) and now - ensure_utc(youtube.updated_at) > STALE_AFTER
    effective = opportunity
    if is_stale and opportunity is not None:
        effective = round_half_up(opportunity * STALE_DISCOUNT)
    return PriorityScore(
        idea_id=idea_id,
        vote_score=vote_score,
        opportunity_score=opportunity,
        effective_opportunity_score=effective,
        priority_score=blend(vote_score, effective, weight),
        has_youtube_data=opportunity is not None,
        is_stale=is_stale,
    )


async def get_ideas_with_priority(current_user: UserInDB, storage: Storage) -> List[IdeaWithPriority]:
    require_creator(current_user, "prioritize ideas")
    ideas = await storage.get_ideas(creator_id=current_user.id, status="approved")
    if not ideas:
        return []
    max_votes = max(max(i.votes for i in ideas), 1)
    weight = clamp_weight(current_user.priority_weight)
    now = utcnow()
    results = []
    for idea in ideas:
        youtube = await storage.get_youtube_score(idea.id)
        results.append(IdeaWithPriority(
            idea_id=idea.id,
            title=idea.title,
            votes=idea.votes,
            priority=score_idea(idea.id, idea.votes, max_votes, weight, youtube, now),
        ))
    results.sort(key=lambda r: r.priority.priority_score, reverse=True)
    return results


async def update_priority_weight(current_user: UserInDB, weight: int, storage: Storage) -> int:
    require_creator(current_user, "prioritize ideas")
    clamped = clamp_weight(weight)
    await storage.update_priority_weight(current_user.id, clamped)
    logger.info(f"Priority weight for creator {current_user.id} set to {clamped}")
    return clamped
