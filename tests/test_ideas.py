"""
Idea lifecycle, voting and ranking against both storage backends.
"""
import asyncio

import pytest

from core.config import settings
from core.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidTransitionError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from schemas.idea_schema import IdeaCreate, IdeaUpdate
from services import idea_service, points_ledger

pytestmark = pytest.mark.integration


def new_idea(title="An idea", description=""):
    return IdeaCreate(title=title, description=description)


class TestVotingScenario:
    """Creator publishes, audience votes, duplicates are refused."""

    async def test_single_idea_vote_awards_point(self, storage, creator, audience):
        idea = await idea_service.create_idea(creator, new_idea(), storage)
        assert idea.votes == 0
        assert idea.current_position == 1

        voted = await idea_service.vote_for_idea(audience, idea.id, storage)
        assert voted.votes == 1
        assert voted.current_position == 1
        points = await storage.get_user_points(audience.id, creator.id)
        assert points.total_points == 1

        with pytest.raises(ConflictError):
            await idea_service.vote_for_idea(audience, idea.id, storage)
        assert (await storage.get_idea(idea.id)).votes == 1
        assert (await storage.get_user_points(audience.id, creator.id)).total_points == 1

    async def test_vote_on_missing_idea(self, storage, audience):
        with pytest.raises(NotFoundError):
            await idea_service.vote_for_idea(audience, 999, storage)

    async def test_vote_on_pending_idea_is_rejected(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, 5, points_ledger.EARNED, "seed")
        pending = await idea_service.suggest_idea(audience, creator.id, new_idea(), storage)
        with pytest.raises(ValidationError):
            await idea_service.vote_for_idea(audience, pending.id, storage)

    async def test_existing_vote_lookup(self, storage, creator, audience):
        idea = await idea_service.create_idea(creator, new_idea(), storage)
        assert await storage.get_vote_by_user_or_session(idea.id, user_id=audience.id) is None
        await idea_service.vote_for_idea(audience, idea.id, storage)
        vote = await storage.get_vote_by_user_or_session(idea.id, user_id=audience.id)
        assert vote is not None
        assert vote.user_id == audience.id

    async def test_session_votes_are_deduplicated(self, storage, creator):
        idea = await idea_service.create_idea(creator, new_idea(), storage)
        await storage.create_vote(idea.id, session_id="anon-1")
        with pytest.raises(ConflictError):
            await storage.create_vote(idea.id, session_id="anon-1")
        assert (await storage.get_idea(idea.id)).votes == 1


class TestRankingScenario:
    """Ties keep the earlier idea on top and change stays zero."""

    async def test_tie_breaks_on_creation_time(self, storage, creator, make_user):
        i2 = await storage.create_idea(creator.id, new_idea("Second"))
        i1 = await storage.create_idea(creator.id, new_idea("First"))
        for _ in range(5):
            await storage.increment_vote(i2.id)
        for _ in range(3):
            await storage.increment_vote(i1.id)

        board = {i.id: i.position for i in await storage.get_ideas_with_positions(creator.id)}
        assert board[i2.id].current == 1
        assert board[i1.id].current == 2

        voter_a = await make_user()
        await idea_service.vote_for_idea(voter_a, i1.id, storage)
        board = {i.id: i.position for i in await storage.get_ideas_with_positions(creator.id)}
        assert (board[i2.id].current, board[i2.id].change) == (1, 0)
        assert (board[i1.id].current, board[i1.id].change) == (2, 0)

        voter_b = await make_user()
        await idea_service.vote_for_idea(voter_b, i1.id, storage)
        board = {i.id: i.position for i in await storage.get_ideas_with_positions(creator.id)}
        assert (await storage.get_idea(i1.id)).votes == 5
        assert (board[i2.id].current, board[i2.id].change) == (1, 0)
        assert (board[i1.id].current, board[i1.id].change) == (2, 0)

    async def test_overtake_reports_positive_change(self, storage, creator, audience):
        first = await storage.create_idea(creator.id, new_idea("First"))
        second = await storage.create_idea(creator.id, new_idea("Second"))
        await idea_service.vote_for_idea(audience, second.id, storage)
        board = {i.id: i.position for i in await storage.get_ideas_with_positions(creator.id)}
        assert (board[second.id].current, board[second.id].previous, board[second.id].change) == (1, 2, 1)
        assert (board[first.id].current, board[first.id].change) == (2, -1)

    async def test_positions_stay_dense_after_delete(self, storage, creator):
        ideas = [await storage.create_idea(creator.id, new_idea(f"Idea {n}")) for n in range(4)]
        await idea_service.delete_idea(creator, ideas[1].id, storage)
        positions = sorted(i.current_position for i in await storage.get_ideas(creator_id=creator.id))
        assert positions == [1, 2, 3]

    async def test_leaderboard_is_sorted_by_position(self, storage, creator, make_user):
        a = await storage.create_idea(creator.id, new_idea("A"))
        b = await storage.create_idea(creator.id, new_idea("B"))
        await idea_service.vote_for_idea(await make_user(), b.id, storage)
        board = await idea_service.list_leaderboard(storage, creator_id=creator.id)
        assert [i.id for i in board] == [b.id, a.id]

    async def test_update_positions_is_dense_and_idempotent(self, storage, creator, audience):
        ideas = [await storage.create_idea(creator.id, new_idea(f"Idea {n}")) for n in range(4)]
        pending = await storage.suggest_idea(creator.id, new_idea("Pending"), audience.id)
        await storage.increment_vote(ideas[2].id)

        await storage.update_positions()
        first = {i.id: i.current_position for i in await storage.get_ideas(creator_id=creator.id, status="approved")}
        assert sorted(first.values()) == [1, 2, 3, 4]
        assert first[ideas[2].id] == 1

        await storage.update_positions()
        again = await storage.get_ideas(creator_id=creator.id, status="approved")
        assert {i.id: i.current_position for i in again} == first
        assert all(i.previous_position == i.current_position for i in again)
        assert (await storage.get_idea(pending.id)).current_position is None


class TestConcurrentVotes:
    """Votes racing each other still count once and leave a dense ranking."""

    async def test_same_user_twice_at_once_counts_once(self, storage, creator, audience):
        idea = await storage.create_idea(creator.id, new_idea())
        results = await asyncio.gather(
            storage.create_vote(idea.id, user_id=audience.id, reward=1),
            storage.create_vote(idea.id, user_id=audience.id, reward=1),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert (await storage.get_idea(idea.id)).votes == 1
        assert (await storage.get_user_points(audience.id, creator.id)).total_points == 1
        assert len(await storage.get_user_point_transactions(audience.id, creator.id)) == 1

    async def test_votes_on_different_ideas_all_land(self, storage, creator, make_user):
        ideas = [await storage.create_idea(creator.id, new_idea(f"Idea {n}")) for n in range(3)]
        voters = [await make_user() for _ in ideas]
        await asyncio.gather(*(
            storage.create_vote(idea.id, user_id=voter.id, reward=1) for idea, voter in zip(ideas, voters)
        ))
        assert [(await storage.get_idea(i.id)).votes for i in ideas] == [1, 1, 1]
        positions = sorted(i.current_position for i in await storage.get_ideas(creator_id=creator.id))
        assert positions == [1, 2, 3]


class TestSuggestions:
    """Suggestions cost points and pay out on approval."""

    async def test_suggestion_requires_enough_points(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, 2, points_ledger.EARNED, "seed")
        with pytest.raises(InsufficientPointsError):
            await idea_service.suggest_idea(audience, creator.id, new_idea("Too poor"), storage)
        assert await storage.get_pending_ideas(creator.id) == []
        assert (await storage.get_user_points(audience.id, creator.id)).total_points == 2

        idea = await idea_service.create_idea(creator, new_idea("Vote me"), storage)
        await idea_service.vote_for_idea(audience, idea.id, storage)
        assert (await storage.get_user_points(audience.id, creator.id)).total_points == 3

        suggestion = await idea_service.suggest_idea(audience, creator.id, new_idea("Now affordable"), storage)
        assert suggestion.status == "pending"
        assert suggestion.votes == 0
        assert suggestion.current_position is None
        assert suggestion.suggested_by == audience.id
        assert (await storage.get_user_points(audience.id, creator.id)).total_points == 0

        txns = await storage.get_user_point_transactions(audience.id, creator.id)
        assert txns[0].type == "spent"
        assert txns[0].reason == points_ledger.REASON_SUGGESTION

    async def test_approval_ranks_idea_and_rewards_suggester(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, settings.SUGGESTION_COST, points_ledger.EARNED, "seed")
        suggestion = await idea_service.suggest_idea(audience, creator.id, new_idea("Please do this"), storage)
        before = (await storage.get_user_points(audience.id, creator.id)).total_points

        approved = await idea_service.approve_idea(creator, suggestion.id, storage)
        assert approved.status == "approved"
        assert approved.current_position == 1
        after = (await storage.get_user_points(audience.id, creator.id)).total_points
        assert after - before == 2

        board = await storage.get_ideas_with_positions(creator.id)
        assert [i.id for i in board] == [suggestion.id]
        assert board[0].suggested_by_username == audience.username
        assert await storage.get_pending_ideas(creator.id) == []

    async def test_approving_twice_is_invalid(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, 3, points_ledger.EARNED, "seed")
        suggestion = await idea_service.suggest_idea(audience, creator.id, new_idea(), storage)
        await idea_service.approve_idea(creator, suggestion.id, storage)
        with pytest.raises(InvalidTransitionError):
            await idea_service.approve_idea(creator, suggestion.id, storage)

    async def test_only_owner_can_moderate(self, storage, creator, audience, make_user):
        other_creator = await make_user(role="creator")
        await storage.update_user_points(audience.id, creator.id, 3, points_ledger.EARNED, "seed")
        suggestion = await idea_service.suggest_idea(audience, creator.id, new_idea(), storage)
        with pytest.raises(ForbiddenError):
            await idea_service.approve_idea(other_creator, suggestion.id, storage)
        with pytest.raises(ForbiddenError):
            await idea_service.reject_idea(other_creator, suggestion.id, storage)

    async def test_reject_deletes_pending_only(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, 3, points_ledger.EARNED, "seed")
        suggestion = await idea_service.suggest_idea(audience, creator.id, new_idea(), storage)
        await idea_service.reject_idea(creator, suggestion.id, storage)
        assert await storage.get_idea(suggestion.id) is None

        approved = await idea_service.create_idea(creator, new_idea(), storage)
        with pytest.raises(InvalidTransitionError):
            await idea_service.reject_idea(creator, approved.id, storage)

    async def test_cannot_suggest_to_self_or_non_creator(self, storage, creator, audience, make_user):
        with pytest.raises(ForbiddenError):
            await idea_service.suggest_idea(creator, creator.id, new_idea(), storage)
        other_audience = await make_user()
        with pytest.raises(NotFoundError):
            await idea_service.suggest_idea(audience, other_audience.id, new_idea(), storage)

    async def test_audience_stats(self, storage, creator, audience):
        await storage.update_user_points(audience.id, creator.id, 6, points_ledger.EARNED, "seed")
        first = await idea_service.suggest_idea(audience, creator.id, new_idea("One"), storage)
        await idea_service.suggest_idea(audience, creator.id, new_idea("Two"), storage)
        await idea_service.approve_idea(creator, first.id, storage)
        await idea_service.vote_for_idea(audience, first.id, storage)
        stats = await storage.get_audience_stats(audience.id)
        assert (stats.votes_given, stats.ideas_suggested, stats.ideas_approved) == (1, 2, 1)


class TestQuotaAndEditing:

    async def test_quota_boundary(self, storage, creator):
        for n in range(4):
            await idea_service.create_idea(creator, new_idea(f"Idea {n}"), storage)
        assert (await storage.get_user_idea_quota(creator.id, 5)).has_reached_limit is False
        await idea_service.create_idea(creator, new_idea("Fifth"), storage)
        quota = await storage.get_user_idea_quota(creator.id, 5)
        assert (quota.count, quota.has_reached_limit) == (5, True)
        with pytest.raises(QuotaExceededError):
            await idea_service.create_idea(creator, new_idea("Sixth"), storage)

    async def test_premium_creator_bypasses_quota(self, storage, premium_creator):
        for n in range(settings.FREE_IDEA_LIMIT + 1):
            await idea_service.create_idea(premium_creator, new_idea(f"Idea {n}"), storage)
        quota = await idea_service.get_idea_quota(premium_creator, storage)
        assert quota.count == settings.FREE_IDEA_LIMIT + 1
        assert quota.has_reached_limit is False

    async def test_audience_cannot_create_ideas(self, storage, audience):
        with pytest.raises(ForbiddenError):
            await idea_service.create_idea(audience, new_idea(), storage)

    async def test_update_keeps_votes_and_position(self, storage, creator, audience):
        idea = await idea_service.create_idea(creator, new_idea("Old title"), storage)
        await idea_service.vote_for_idea(audience, idea.id, storage)
        updated = await idea_service.update_idea(creator, idea.id, IdeaUpdate(title="New title", description="More"), storage)
        assert updated.title == "New title"
        assert updated.votes == 1
        assert updated.current_position == 1

    async def test_popular_ideas_are_locked(self, storage, creator):
        idea = await idea_service.create_idea(creator, new_idea(), storage)
        for _ in range(settings.MAX_VOTES_FOR_EDIT + 1):
            await storage.increment_vote(idea.id)
        with pytest.raises(ForbiddenError):
            await idea_service.update_idea(creator, idea.id, IdeaUpdate(title="Changed"), storage)

    async def test_delete_removes_votes(self, storage, creator, audience):
        idea = await idea_service.create_idea(creator, new_idea(), storage)
        await idea_service.vote_for_idea(audience, idea.id, storage)
        await idea_service.delete_idea(creator, idea.id, storage)
        assert await storage.get_idea(idea.id) is None
        assert await storage.get_vote_by_user_or_session(idea.id, user_id=audience.id) is None
        with pytest.raises(NotFoundError):
            await idea_service.delete_idea(creator, idea.id, storage)
