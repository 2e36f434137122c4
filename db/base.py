from db.session import Base, engine
# Register every table on Base.metadata before create_all
from db.models.user import User  # noqa: F401
from db.models.idea import Idea, Vote  # noqa: F401
from db.models.points import UserPoints, PointTransaction  # noqa: F401
from db.models.store import StoreItem, StoreRedemption  # noqa: F401
from db.models.public_link import PublicLink  # noqa: F401
from db.models.youtube_score import YoutubeScore  # noqa: F401
from db.models.youtube_usage import YoutubeUsage  # noqa: F401
import logging

logger = logging.getLogger(__name__)

async def initialize_database(bind=None):
    """Create tables only; schema migrations are out of band."""
    try:
        async with (bind or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise
