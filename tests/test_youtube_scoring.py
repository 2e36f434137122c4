"""
YouTube opportunity scoring: formulas, metrics and the cached refresh flow.
"""
from datetime import datetime, timedelta, timezone

import pytest

from core.errors import ForbiddenError, PremiumRequiredError, QuotaExceededError, ServiceUnavailableError
from schemas.idea_schema import IdeaCreate
from schemas.youtube_schema import YoutubeMetrics
from services import youtube_service as yt
from utils.dates import utcnow

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

SEARCH = {
    "items": [
        {"id": {"videoId": "v1"}, "snippet": {"channelId": "c1", "channelTitle": "Chan One"}},
        {"id": {"videoId": "v2"}, "snippet": {"channelId": "c1", "channelTitle": "Chan One"}},
        {"id": {"videoId": "v3"}, "snippet": {"channelId": "c2", "channelTitle": "Chan Two"}},
    ]
}
STATS = {
    "items": [
        {"id": "v1", "statistics": {"viewCount": "100"}, "snippet": {"publishedAt": "2025-12-22T00:00:00Z"}},
        {"id": "v2", "statistics": {"viewCount": "300"}, "snippet": {"publishedAt": "2025-12-31T12:00:00Z"}},
        {"id": "v3", "statistics": {"viewCount": "50"}, "snippet": {}},
    ]
}


@pytest.mark.unit
class TestFormulas:

    @pytest.mark.parametrize("value, expected", [(0.5, 1), (2.5, 3), (1.4999, 1), (0, 0)])
    def test_round_half_up(self, value, expected):
        assert yt.round_half_up(value) == expected

    def test_demand_score(self):
        assert yt.calculate_demand_score(0, 0, 0) == 0
        assert yt.calculate_demand_score(99, 9999, 99) == 92
        assert yt.calculate_demand_score(10 ** 6, 10 ** 9, 10 ** 6) == 100

    def test_competition_score(self):
        assert yt.calculate_competition_score(0, 0, 0) == 0
        assert yt.calculate_competition_score(9, 999, 9) == 52

    def test_opportunity_score(self):
        assert yt.calculate_opportunity_score(92, 52) == 59
        assert yt.calculate_opportunity_score(100, 0) == 100
        assert yt.calculate_opportunity_score(50, 100) == 15
        assert yt.calculate_opportunity_score(0, 100) == 0

    @pytest.mark.parametrize("score, label", [(0, "low"), (29, "low"), (30, "medium"), (69, "medium"), (70, "high")])
    def test_score_to_label(self, score, label):
        assert yt.score_to_label(score) == label

    @pytest.mark.parametrize("score, label", [(34, "weak"), (35, "good"), (64, "good"), (65, "strong")])
    def test_opportunity_label(self, score, label):
        assert yt.opportunity_score_to_label(score) == label

    @pytest.mark.parametrize("audience, opportunity, label", [
        (50, 50, "balanced"),
        (60, 30, "audience-led"),
        (40, 60, "market-led"),
        (55, 40, "low-priority"),
        (100, 29, "low-priority"),
    ])
    def test_composite_label(self, audience, opportunity, label):
        assert yt.get_composite_label(audience, opportunity) == label

    def test_explanations(self):
        assert yt.explain_opportunity("high", "low", "strong") == "opportunity.strongIdeal"
        assert yt.explain_opportunity("high", "high", "good") == "opportunity.goodCompetitive"
        assert yt.explain_opportunity("low", "low", "weak") == "opportunity.lowDemand"
        assert yt.explain_opportunity("high", "high", "weak") == "opportunity.highCompetition"

    def test_extract_search_query(self):
        assert yt.extract_search_query("¿Is this real?!") == "Is this real"
        query = yt.extract_search_query("abcd " * 12)
        assert len(query) <= yt.MAX_QUERY_LENGTH
        assert set(query.split(" ")) == {"abcd"}


@pytest.mark.unit
class TestMetrics:

    def test_calculate_metrics(self):
        metrics = yt.calculate_metrics(SEARCH, STATS, now=NOW)
        assert metrics.video_count == 3
        assert metrics.avg_views == 150
        assert metrics.median_views == 100
        assert metrics.max_views == 300
        # 100/10 days + 300/1 day (floored) + 50/1 day (no date)
        assert metrics.avg_views_per_day == 120
        assert metrics.unique_channels == 2
        assert [(c.id, c.views) for c in metrics.top_channels] == [("c1", 400), ("c2", 50)]

    def test_empty_results(self):
        metrics = yt.calculate_metrics({}, {"items": []}, now=NOW)
        assert metrics == YoutubeMetrics()

    def test_build_score(self):
        metrics = yt.calculate_metrics(SEARCH, STATS, now=NOW)
        score = yt.build_score(7, "query", metrics, votes=6, now=NOW)
        assert score.idea_id == 7
        assert score.opportunity_score == yt.calculate_opportunity_score(score.demand_score, score.competition_score)
        assert score.demand_label == yt.score_to_label(score.demand_score)
        assert set(score.explanation) == {"demand_reason", "competition_reason", "opportunity_reason"}
        assert score.explanation["demand_reason"].startswith(f"demand.{score.demand_label}|3|150")

    def test_freshness(self):
        score = yt.build_score(1, "q", YoutubeMetrics(), votes=0, now=NOW)
        assert yt.is_fresh(score, NOW + timedelta(hours=47))
        assert not yt.is_fresh(score, NOW + timedelta(hours=49))


class FakeClient:
    def __init__(self, configured=True):
        self.configured = configured
        self.queries = []

    def is_configured(self):
        return self.configured

    async def fetch(self, query, now=None):
        self.queries.append(query)
        return {"search": SEARCH, "stats": STATS}


@pytest.mark.integration
class TestRefreshFlow:

    async def test_refresh_then_cache(self, storage, premium_creator):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="Sourdough basics?"))
        client = FakeClient()

        assert await yt.get_idea_youtube_score(premium_creator, idea.id, storage) is None

        first = await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client)
        assert first.cached is False
        assert first.score.query_term == "Sourdough basics"
        assert client.queries == ["Sourdough basics"]

        second = await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client)
        assert second.cached is True
        assert second.score.opportunity_score == first.score.opportunity_score
        assert len(client.queries) == 1

        forced = await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client, force=True)
        assert forced.cached is False
        assert len(client.queries) == 2

        stored = await yt.get_idea_youtube_score(premium_creator, idea.id, storage)
        assert stored.is_fresh is True
        assert [c.id for c in stored.score.top_channels] == ["c1", "c2"]

    async def test_stale_cache_is_refetched(self, storage, premium_creator):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="Old news"))
        old = yt.build_score(idea.id, "Old news", YoutubeMetrics(), votes=0, now=utcnow() - timedelta(days=3))
        await storage.save_youtube_score(old)
        client = FakeClient()
        result = await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client)
        assert result.cached is False
        assert len(client.queries) == 1

    async def test_unconfigured_client(self, storage, premium_creator):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="No key"))
        with pytest.raises(ServiceUnavailableError):
            await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=FakeClient(configured=False))

    async def test_access_rules(self, storage, creator, premium_creator, make_user):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="Mine"))
        with pytest.raises(PremiumRequiredError):
            await yt.get_idea_youtube_score(creator, idea.id, storage)
        other = await make_user(role="creator", subscription="premium")
        with pytest.raises(ForbiddenError):
            await yt.refresh_idea_youtube_score(other, idea.id, storage, client=FakeClient())

    async def test_deleting_idea_drops_score(self, storage, premium_creator):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="Short lived"))
        await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=FakeClient())
        await storage.delete_idea(idea.id)
        assert await storage.get_youtube_score(idea.id) is None


@pytest.mark.integration
class TestDailyLimits:

    async def test_user_daily_limit(self, storage, premium_creator, monkeypatch):
        monkeypatch.setattr(yt.settings, "YOUTUBE_USER_DAILY_LIMIT", 2)
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="Limited"))
        client = FakeClient()
        for _ in range(2):
            await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client, force=True)

        with pytest.raises(QuotaExceededError) as exc:
            await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client, force=True)
        assert exc.value.to_dict()["rateLimitInfo"] == {"remaining": 0, "limit": 2}
        assert len(client.queries) == 2

        # Cached reads do not count against the limit
        cached = await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=client)
        assert cached.cached is True

    async def test_limit_is_per_user(self, storage, premium_creator, make_user, monkeypatch):
        monkeypatch.setattr(yt.settings, "YOUTUBE_USER_DAILY_LIMIT", 1)
        other = await make_user(role="creator", subscription="premium")
        mine = await storage.create_idea(premium_creator.id, IdeaCreate(title="Mine"))
        theirs = await storage.create_idea(other.id, IdeaCreate(title="Theirs"))
        await yt.refresh_idea_youtube_score(premium_creator, mine.id, storage, client=FakeClient())
        await yt.refresh_idea_youtube_score(other, theirs.id, storage, client=FakeClient())

        usage = await storage.get_youtube_usage(premium_creator.id, utcnow().date())
        assert (usage.analyses, usage.units) == (1, yt.settings.YOUTUBE_UNITS_PER_ANALYSIS)

    async def test_shared_daily_quota(self, storage, premium_creator, make_user, monkeypatch):
        monkeypatch.setattr(yt.settings, "YOUTUBE_DAILY_QUOTA_UNITS", 250)
        other = await make_user(role="creator", subscription="premium")
        mine = await storage.create_idea(premium_creator.id, IdeaCreate(title="Mine"))
        theirs = await storage.create_idea(other.id, IdeaCreate(title="Theirs"))
        client = FakeClient()
        await yt.refresh_idea_youtube_score(premium_creator, mine.id, storage, client=client)
        await yt.refresh_idea_youtube_score(other, theirs.id, storage, client=client)

        with pytest.raises(QuotaExceededError) as exc:
            await yt.refresh_idea_youtube_score(premium_creator, mine.id, storage, client=client, force=True)
        assert "rateLimitInfo" not in exc.value.to_dict()
        assert len(client.queries) == 2
        assert await storage.get_youtube_units_used(utcnow().date()) == 202

    async def test_unconfigured_client_is_not_counted(self, storage, premium_creator):
        idea = await storage.create_idea(premium_creator.id, IdeaCreate(title="No key"))
        with pytest.raises(ServiceUnavailableError):
            await yt.refresh_idea_youtube_score(premium_creator, idea.id, storage, client=FakeClient(configured=False))
        usage = await storage.get_youtube_usage(premium_creator.id, utcnow().date())
        assert usage.analyses == 0


@pytest.mark.integration
class TestYouTubeClient:

    async def test_connection_failure_is_service_unavailable(self):
        client = yt.YouTubeClient(api_key="key", base_url="http://127.0.0.1:9", timeout=2)
        with pytest.raises(ServiceUnavailableError):
            await client.fetch("anything")
