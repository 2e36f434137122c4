from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from utils.dates import ensure_utc


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always hands back UTC-aware values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)
