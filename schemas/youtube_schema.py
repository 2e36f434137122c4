from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional

ScoreLabel = Literal["low", "medium", "high"]
OpportunityLabel = Literal["weak", "good", "strong", "unknown"]
CompositeLabel = Literal["audience-led", "market-led", "balanced", "low-priority"]

class ChannelSummary(BaseModel):
    id: str
    name: str
    views: int

class YoutubeMetrics(BaseModel):
    video_count: int = 0
    avg_views: int = 0
    median_views: int = 0
    max_views: int = 0
    avg_views_per_day: int = 0
    unique_channels: int = 0
    top_channels: List[ChannelSummary] = Field(default_factory=list)

class YoutubeScore(YoutubeMetrics):
    idea_id: int
    query_term: str
    demand_score: int
    demand_label: ScoreLabel
    competition_score: int
    competition_label: ScoreLabel
    opportunity_score: int
    opportunity_label: OpportunityLabel
    composite_label: CompositeLabel
    explanation: Dict[str, str] = Field(default_factory=dict)
    updated_at: datetime

    class Config:
        from_attributes = True

class YoutubeUsage(BaseModel):
    user_id: int
    day: date
    analyses: int = 0
    units: int = 0

    class Config:
        from_attributes = True

class YoutubeScoreResult(BaseModel):
    score: YoutubeScore
    is_fresh: bool
    cached: bool

class PriorityScore(BaseModel):
    idea_id: int
    vote_score: int
    opportunity_score: Optional[int] = None
    effective_opportunity_score: Optional[int] = None
    priority_score: int
    has_youtube_data: bool
    is_stale: bool

class IdeaWithPriority(BaseModel):
    idea_id: int
    title: str
    votes: int
    priority: PriorityScore
