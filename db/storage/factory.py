import logging
from typing import Optional

from core.config import settings
from db.storage.base import Storage

logger = logging.getLogger(__name__)

_storage: Optional[Storage] = None


def build_storage(backend: Optional[str] = None) -> Storage:
    backend = backend or settings.STORAGE_BACKEND
    if backend == "memory":
        from db.storage.memory import MemoryStorage
        return MemoryStorage()
    from db.storage.database import DatabaseStorage
    return DatabaseStorage()


def get_storage() -> Storage:
    """Process-wide storage singleton, chosen by STORAGE_BACKEND."""
    global _storage
    if _storage is None:
        _storage = build_storage()
        logger.info(f"Storage backend initialized: {type(_storage).__name__}")
    return _storage
