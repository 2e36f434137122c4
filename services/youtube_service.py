"""YouTube opportunity scoring for ideas.

Searches the YouTube Data API for an idea's title, summarizes the last six
months of matching videos and turns that into demand, competition and
opportunity scores. Scores are cached per idea for YOUTUBE_CACHE_TTL_HOURS.
Fetches count against a per-user daily analysis limit and a shared daily
API unit budget.
"""
import math
import re
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp

from core.config import settings
from core.errors import ForbiddenError, QuotaExceededError, ServiceUnavailableError
from db.storage.base import Storage
from schemas.user_schema import UserInDB
from schemas.youtube_schema import ChannelSummary, YoutubeMetrics, YoutubeScore, YoutubeScoreResult
from services import access_policy
from services.idea_service import get_idea_or_404
from utils.dates import ensure_utc, utcnow
from utils.timing import timeit

logger = logging.getLogger(__name__)

SEARCH_MAX_RESULTS = 50
SEARCH_WINDOW_DAYS = 182
MAX_QUERY_LENGTH = 50
TOP_CHANNELS = 10


def round_half_up(value: float) -> int:
    # builtin round() is banker's rounding; scores are rounded half up
    return int(math.floor(value + 0.5))


def extract_search_query(title: str) -> str:
    query = re.sub(r"[¿?¡!]", "", title or "")
    query = re.sub(r"\.{2,}", " ", query).strip()
    if len(query) > MAX_QUERY_LENGTH:
        # cut at the last full word
        query = " ".join(query[:MAX_QUERY_LENGTH].split(" ")[:-1])
    return query


def _parse_published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _view_count(video: Dict[str, Any]) -> int:
    try:
        return int((video.get("statistics") or {}).get("viewCount") or 0)
    except (TypeError, ValueError):
        return 0


def calculate_metrics(search_data: Dict[str, Any], stats_data: Dict[str, Any],
                      now: Optional[datetime] = None) -> YoutubeMetrics:
    now = now or utcnow()
    search_items: List[Dict[str, Any]] = search_data.get("items") or []
    videos: List[Dict[str, Any]] = stats_data.get("items") or []

    views = [_view_count(v) for v in videos]
    sorted_views = sorted(views, reverse=True)
    avg_views = round_half_up(sum(views) / len(views)) if views else 0
    median_views = sorted_views[len(sorted_views) // 2] if sorted_views else 0

    total_velocity = 0.0
    for video, count in zip(videos, views):
        published = _parse_published((video.get("snippet") or {}).get("publishedAt"))
        days_old = max(1.0, (now - published).total_seconds() / 86400) if published else 1.0
        total_velocity += count / days_old

    channels: Dict[str, Dict[str, Any]] = {}
    for idx, item in enumerate(search_items):
        snippet = item.get("snippet") or {}
        channel_id = snippet.get("channelId")
        if not channel_id:
            continue
        item_views = views[idx] if idx < len(views) else 0
        entry = channels.setdefault(channel_id, {"name": snippet.get("channelTitle") or "", "views": 0})
        entry["views"] += item_views

    top = sorted(
        (ChannelSummary(id=cid, name=data["name"], views=data["views"]) for cid, data in channels.items()),
        key=lambda c: c.views,
        reverse=True,
    )[:TOP_CHANNELS]

    return YoutubeMetrics(
        video_count=len(search_items),
        avg_views=avg_views,
        median_views=median_views,
        max_views=sorted_views[0] if sorted_views else 0,
        avg_views_per_day=round_half_up(total_velocity / max(1, len(videos))),
        unique_channels=len(channels),
        top_channels=top,
    )


def calculate_demand_score(video_count: int, avg_views: int, avg_views_per_day: int) -> int:
    volume = min(40, math.log10(video_count + 1) * 20)
    reach = min(40, math.log10(avg_views + 1) * 8)
    velocity = min(20, math.log10(avg_views_per_day + 1) * 10)
    return round_half_up(min(100, volume + reach + velocity))


def calculate_competition_score(video_count: int, avg_views: int, unique_channels: int) -> int:
    volume = min(50, math.log10(video_count + 1) * 25)
    channels = min(30, math.log10(unique_channels + 1) * 15)
    established = min(20, math.log10(avg_views + 1) * 4)
    return round_half_up(min(100, volume + channels + established))


def calculate_opportunity_score(demand_score: int, competition_score: int) -> int:
    score = demand_score * (1 - (competition_score / 100) * 0.7)
    return round_half_up(max(0, min(100, score)))


def score_to_label(score: int) -> str:
    if score < 30:
        return "low"
    if score < 70:
        return "medium"
    return "high"


def opportunity_score_to_label(score: int) -> str:
    if score < 35:
        return "weak"
    if score < 65:
        return "good"
    return "strong"


def get_composite_label(audience_score: int, opportunity_score: int) -> str:
    if audience_score >= 50 and opportunity_score >= 50:
        return "balanced"
    if audience_score >= 60 and opportunity_score >= 30:
        return "audience-led"
    if opportunity_score >= 60 and audience_score < 50:
        return "market-led"
    return "low-priority"


def explain_opportunity(demand_label: str, competition_label: str, opportunity_label: str) -> str:
    if opportunity_label == "strong":
        if demand_label == "high" and competition_label == "low":
            return "opportunity.strongIdeal"
        return "opportunity.strongGood"
    if opportunity_label == "good":
        if demand_label == "high" and competition_label == "high":
            return "opportunity.goodCompetitive"
        return "opportunity.goodBalanced"
    if demand_label == "low":
        return "opportunity.lowDemand"
    return "opportunity.highCompetition"


def build_score(idea_id: int, query_term: str, metrics: YoutubeMetrics, votes: int,
                now: Optional[datetime] = None) -> YoutubeScore:
    demand = calculate_demand_score(metrics.video_count, metrics.avg_views, metrics.avg_views_per_day)
    competition = calculate_competition_score(metrics.video_count, metrics.avg_views, metrics.unique_channels)
    opportunity = calculate_opportunity_score(demand, competition)
    demand_label = score_to_label(demand)
    competition_label = score_to_label(competition)
    opportunity_label = opportunity_score_to_label(opportunity)
    return YoutubeScore(
        **metrics.model_dump(),
        idea_id=idea_id,
        query_term=query_term,
        demand_score=demand,
        demand_label=demand_label,
        competition_score=competition,
        competition_label=competition_label,
        opportunity_score=opportunity,
        opportunity_label=opportunity_label,
        composite_label=get_composite_label(min(100, votes * 10), opportunity),
        # "key|param|param" strings, translated client-side
        explanation={
            "demand_reason": f"demand.{demand_label}|{metrics.video_count}|{metrics.avg_views}",
            "competition_reason": f"competition.{competition_label}|{metrics.unique_channels}",
            "opportunity_reason": explain_opportunity(demand_label, competition_label, opportunity_label),
        },
        updated_at=now or utcnow(),
    )


def is_fresh(score: YoutubeScore, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return now - ensure_utc(score.updated_at) < timedelta(hours=settings.YOUTUBE_CACHE_TTL_HOURS)


class YouTubeClient:
    """Thin aiohttp wrapper over the two Data API calls the scorer needs."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.api_key = api_key if api_key is not None else settings.YOUTUBE_API_KEY
        self.base_url = (base_url or settings.YOUTUBE_API_BASE).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.YOUTUBE_REQUEST_TIMEOUT)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get(self, session: aiohttp.ClientSession, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        async with session.get(url, params={**params, "key": self.api_key}) as resp:
            data = await resp.json(content_type=None)
            if resp.status >= 400:
                message = ((data or {}).get("error") or {}).get("message") or f"HTTP {resp.status}"
                logger.error(f"YouTube API error on /{path}: {resp.status} {message}")
                raise ServiceUnavailableError(f"YouTube API error: {message}")
            return data or {}

    async def fetch(self, query: str, now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
        """Return ``{"search": ..., "stats": ...}`` for the query."""
        now = now or utcnow()
        published_after = (now - timedelta(days=SEARCH_WINDOW_DAYS)).strftime("%Y-%m-%dT%H:%M:%SZ")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                logger.info(f"YouTube search: '{query}'")
                search = await self._get(session, "search", {
                    "q": query,
                    "part": "snippet",
                    "type": "video",
                    "order": "relevance",
                    "maxResults": str(SEARCH_MAX_RESULTS),
                    "publishedAfter": published_after,
                })
                video_ids = [
                    (item.get("id") or {}).get("videoId")
                    for item in search.get("items") or []
                ]
                video_ids = [v for v in video_ids if v]
                if not video_ids:
                    return {"search": search, "stats": {"items": []}}
                stats = await self._get(session, "videos", {
                    "id": ",".join(video_ids),
                    "part": "statistics,snippet",
                })
                return {"search": search, "stats": stats}
        except aiohttp.ClientError as e:
            logger.exception(f"YouTube request failed: {e}")
            raise ServiceUnavailableError("YouTube service unavailable")


async def _get_scorable_idea(current_user: UserInDB, idea_id: int, storage: Storage):
    access_policy.require_premium_access(current_user)
    idea = await get_idea_or_404(idea_id, storage)
    if idea.creator_id != current_user.id:
        raise ForbiddenError("You can only analyze your own ideas")
    return idea


async def get_idea_youtube_score(current_user: UserInDB, idea_id: int, storage: Storage) -> Optional[YoutubeScoreResult]:
    await _get_scorable_idea(current_user, idea_id, storage)
    score = await storage.get_youtube_score(idea_id)
    if not score:
        return None
    return YoutubeScoreResult(score=score, is_fresh=is_fresh(score), cached=True)


@timeit()
async def refresh_idea_youtube_score(
    current_user: UserInDB,
    idea_id: int,
    storage: Storage,
    client: Optional[YouTubeClient] = None,
    force: bool = False,
) -> YoutubeScoreResult:
    idea = await _get_scorable_idea(current_user, idea_id, storage)
    if not force:
        cached = await storage.get_youtube_score(idea_id)
        if cached and is_fresh(cached):
            return YoutubeScoreResult(score=cached, is_fresh=True, cached=True)

    client = client or YouTubeClient()
    if not client.is_configured():
        raise ServiceUnavailableError("YouTube API key not configured")

    query = extract_search_query(idea.title)
    now = utcnow()
    try:
        usage = await storage.record_youtube_analysis(
            current_user.id,
            now.date(),
            settings.YOUTUBE_UNITS_PER_ANALYSIS,
            settings.YOUTUBE_USER_DAILY_LIMIT,
            settings.YOUTUBE_DAILY_QUOTA_UNITS,
        )
    except QuotaExceededError as e:
        logger.warning(f"YouTube analysis refused for user {current_user.id}: {e.detail}")
        raise
    logger.info(f"YouTube analysis {usage.analyses}/{settings.YOUTUBE_USER_DAILY_LIMIT} today for user {current_user.id}")
    data = await client.fetch(query, now=now)
    metrics = calculate_metrics(data["search"], data["stats"], now=now)
    score = await storage.save_youtube_score(build_score(idea.id, query, metrics, idea.votes, now=now))
    logger.info(
        f"YouTube score for idea {idea_id}: demand={score.demand_score} "
        f"competition={score.competition_score} opportunity={score.opportunity_score}"
    )
    return YoutubeScoreResult(score=score, is_fresh=True, cached=False)
