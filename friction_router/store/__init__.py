"""
Store module - the key-value persistence substrate.

Every persisted record (rate counters, identity cache entries, analytics
aggregates, encrypted backups) lives here under a composite string key.
"""
from typing import Optional

from friction_router.core.clock import Clock
from friction_router.core.logging_config import get_logger
from friction_router.store.base import KeyValueStore
from friction_router.store.memory import MemoryKeyValueStore
from friction_router.store.sql import SQLKeyValueStore

logger = get_logger(__name__)

MEMORY_URL = "memory://"


def create_store(url: str, clock: Optional[Clock] = None) -> KeyValueStore:
    """Build a store backend from a URL (`memory://` or any SQLAlchemy URL)."""
    if url == MEMORY_URL:
        return MemoryKeyValueStore(clock=clock)
    return SQLKeyValueStore(url, clock=clock)


# Module-level instance (singleton pattern)
_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """Get or create the process-wide store from settings."""
    global _store
    if _store is None:
        from friction_router.core.config import get_settings
        _store = create_store(get_settings().store_url)
    return _store


def reset_store() -> None:
    """Close and forget the process-wide store."""
    global _store
    if _store is not None:
        _store.close()
        _store = None


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLKeyValueStore",
    "create_store",
    "get_store",
    "reset_store",
]
