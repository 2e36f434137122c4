"""Leaderboard ordering and position bookkeeping.

Both storage backends call these helpers from inside their write critical
section, so the functions here only read and assign attributes; they work on
pydantic ``Idea`` records and ORM rows alike.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from schemas.idea_schema import IdeaPosition
from utils.dates import ensure_utc, utcnow

RANKED_STATUS = "approved"


def ranking_key(idea):
    # votes desc, then earlier created first, then id for full determinism
    return (-int(idea.votes or 0), ensure_utc(idea.created_at), idea.id)


def compute_ranks(ideas: Iterable, scope: str = "global") -> Dict[int, int]:
    """Map idea id -> 1-based rank for every approved idea.

    ``scope="global"`` ranks all approved ideas together; ``scope="creator"``
    produces a dense 1..N sequence per creator.
    """
    groups = defaultdict(list)
    for idea in ideas:
        if idea.status != RANKED_STATUS:
            continue
        groups[idea.creator_id if scope == "creator" else None].append(idea)

    ranks: Dict[int, int] = {}
    for members in groups.values():
        for index, idea in enumerate(sorted(members, key=ranking_key)):
            ranks[idea.id] = index + 1
    return ranks


def apply_positions(ideas: List, scope: str = "global", now: Optional[datetime] = None) -> List:
    """Shift current -> previous and write the fresh rank onto every idea."""
    now = now or utcnow()
    ranks = compute_ranks(ideas, scope)
    for idea in ideas:
        idea.previous_position = idea.current_position
        idea.current_position = ranks.get(idea.id)
        idea.last_position_update = now
    return ideas


def position_change(current: Optional[int], previous: Optional[int]) -> int:
    """Positive when the idea climbed (its numeric position went down)."""
    if current is None or previous is None or current == previous:
        return 0
    return previous - current


def position_info(idea) -> IdeaPosition:
    return IdeaPosition(
        current=idea.current_position,
        previous=idea.previous_position,
        change=position_change(idea.current_position, idea.previous_position),
    )


def sort_by_position(ideas: Iterable) -> List:
    """Ranked ideas first in position order; unranked ones after, by ranking key."""
    return sorted(
        ideas,
        key=lambda i: (i.current_position is None, i.current_position or 0, ranking_key(i)),
    )
