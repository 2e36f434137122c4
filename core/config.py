from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Fanlist API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Security settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./fanlist.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_CONNECT_TIMEOUT: int = 10
    DB_PRE_PING: bool = True

    # Storage backend: "sql" (relational) or "memory" (in-process maps)
    STORAGE_BACKEND: str = "sql"
    # Ranking scope: "global" ranks every approved idea together, "creator" ranks per creator
    RANKING_SCOPE: str = "global"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5000",
        "http://localhost:5173",
    ]

    # Public leaderboard links
    PUBLIC_BASE_URL: str = "http://localhost:5000"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # Idea and store policy
    FREE_IDEA_LIMIT: int = 5
    MAX_VOTES_FOR_EDIT: int = 100
    MAX_ACTIVE_STORE_ITEMS: int = 5
    TRIAL_DAYS: int = 14
    CSV_IMPORT_MAX_ROWS: int = 100

    # Points economy
    POINTS_PER_VOTE: int = 1
    POINTS_PER_APPROVED_SUGGESTION: int = 2
    SUGGESTION_COST: int = 3

    # YouTube opportunity panel
    YOUTUBE_API_KEY: Optional[str] = None
    YOUTUBE_API_BASE: str = "https://www.googleapis.com/youtube/v3"
    YOUTUBE_CACHE_TTL_HOURS: int = 48
    YOUTUBE_REQUEST_TIMEOUT: int = 15
    YOUTUBE_USER_DAILY_LIMIT: int = 10
    YOUTUBE_DAILY_QUOTA_UNITS: int = 9000
    # search.list costs 100 units, videos.list 1
    YOUTUBE_UNITS_PER_ANALYSIS: int = 101

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()

# Validate required settings
if not settings.SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable is required")

if settings.STORAGE_BACKEND not in ("sql", "memory"):
    raise ValueError("STORAGE_BACKEND must be 'sql' or 'memory'")

if settings.RANKING_SCOPE not in ("global", "creator"):
    raise ValueError("RANKING_SCOPE must be 'global' or 'creator'")
