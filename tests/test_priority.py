"""
Priority blending of votes and YouTube opportunity.
"""
from datetime import timedelta
from types import SimpleNamespace

import pytest

from core.errors import ForbiddenError
from schemas.idea_schema import IdeaCreate
from schemas.youtube_schema import YoutubeMetrics
from services import priority_service
from services.youtube_service import build_score
from utils.dates import utcnow


@pytest.mark.unit
class TestPriorityMath:

    @pytest.mark.parametrize("weight, expected", [(None, 55), (10, 30), (90, 70), (50, 50)])
    def test_clamp_weight(self, weight, expected):
        assert priority_service.clamp_weight(weight) == expected

    def test_normalize_votes(self):
        assert priority_service.normalize_votes(5, 10) == 50
        assert priority_service.normalize_votes(3, 3) == 100
        assert priority_service.normalize_votes(0, 0) == 0

    def test_blend(self):
        assert priority_service.blend(80, None, 55) == 80
        assert priority_service.blend(100, 0, 55) == 55
        assert priority_service.blend(50, 100, 70) == 65

    def test_fresh_youtube_data(self):
        now = utcnow()
        youtube = SimpleNamespace(opportunity_score=50, updated_at=now - timedelta(hours=1))
        score = priority_service.score_idea(1, 10, 10, 50, youtube, now)
        assert score.is_stale is False
        assert score.effective_opportunity_score == 50
        assert score.priority_score == 75

    def test_stale_youtube_data_is_discounted(self):
        now = utcnow()
        youtube = SimpleNamespace(opportunity_score=50, updated_at=now - timedelta(hours=25))
        score = priority_service.score_idea(1, 10, 10, 50, youtube, now)
        assert score.is_stale is True
        assert score.effective_opportunity_score == 40
        assert score.priority_score == 70

    def test_without_youtube_data(self):
        score = priority_service.score_idea(1, 2, 4, 55)
        assert score.has_youtube_data is False
        assert score.priority_score == score.vote_score == 50


@pytest.mark.integration
class TestPriorityService:

    async def test_ideas_sorted_by_priority(self, storage, creator):
        popular = await storage.create_idea(creator.id, IdeaCreate(title="Popular"))
        quiet = await storage.create_idea(creator.id, IdeaCreate(title="Quiet"))
        await storage.increment_vote(popular.id)
        await storage.increment_vote(popular.id)
        await storage.save_youtube_score(
            build_score(quiet.id, "Quiet", YoutubeMetrics(video_count=99, avg_views=9999, avg_views_per_day=99), 0)
        )

        results = await priority_service.get_ideas_with_priority(creator, storage)
        assert [r.title for r in results] == ["Popular", "Quiet"]
        assert results[0].priority.vote_score == 100
        assert results[0].priority.has_youtube_data is False
        assert results[1].priority.has_youtube_data is True
        assert 0 < results[1].priority.priority_score < 100

    async def test_no_ideas(self, storage, creator):
        assert await priority_service.get_ideas_with_priority(creator, storage) == []

    async def test_update_weight_is_clamped(self, storage, creator):
        assert await priority_service.update_priority_weight(creator, 90, storage) == 70
        assert (await storage.get_user(creator.id)).priority_weight == 70

    async def test_audience_cannot_prioritize(self, storage, audience):
        with pytest.raises(ForbiddenError):
            await priority_service.get_ideas_with_priority(audience, storage)
        with pytest.raises(ForbiddenError):
            await priority_service.update_priority_weight(audience, 50, storage)
