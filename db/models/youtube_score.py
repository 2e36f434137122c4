from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.types import JSON
from db.session import Base
from db.types import UTCDateTime
from utils.dates import utcnow


class YoutubeScore(Base):
    __tablename__ = "youtube_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idea_id = Column(Integer, ForeignKey("ideas.id"), unique=True, index=True, nullable=False)
    query_term = Column(String(255), nullable=False)
    video_count = Column(Integer, default=0, nullable=False)
    avg_views = Column(Integer, default=0, nullable=False)
    median_views = Column(Integer, default=0, nullable=False)
    max_views = Column(Integer, default=0, nullable=False)
    avg_views_per_day = Column(Integer, default=0, nullable=False)
    unique_channels = Column(Integer, default=0, nullable=False)
    top_channels = Column(JSON, default=list)
    demand_score = Column(Integer, nullable=False)
    demand_label = Column(String(10), nullable=False)
    competition_score = Column(Integer, nullable=False)
    competition_label = Column(String(10), nullable=False)
    opportunity_score = Column(Integer, nullable=False)
    opportunity_label = Column(String(10), nullable=False)
    composite_label = Column(String(20), nullable=False)
    explanation = Column(JSON, default=dict)
    updated_at = Column(UTCDateTime, default=utcnow, nullable=False)
