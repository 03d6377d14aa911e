"""
In-process key-value store.

Used by the test suite and for single-instance development
(`STORE_URL=memory://`). Expiry is evaluated lazily against the injected
clock, which lets tests advance time instead of sleeping.
"""
import threading
from typing import Dict, List, Optional, Tuple

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.logging_config import get_logger
from friction_router.store.base import DEFAULT_LIST_LIMIT, KeyValueStore, validate_ttl

logger = get_logger(__name__)


class MemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store with lazy expiry.

    Example:
        >>> store = MemoryKeyValueStore()
        >>> store.put("u:abc:burst", "1|1700000000000", ttl_seconds=10)
        >>> store.get("u:abc:burst")
        '1|1700000000000'
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._data: Dict[str, Tuple[str, Optional[int]]] = {}
        self._lock = threading.RLock()
        logger.info("MemoryKeyValueStore initialized")

    def _is_live(self, expires_at_ms: Optional[int], now_ms: int) -> bool:
        return expires_at_ms is None or expires_at_ms > now_ms

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at_ms = entry
            if not self._is_live(expires_at_ms, self.clock.now_ms()):
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = validate_ttl(ttl_seconds)
        expires_at_ms = None if ttl is None else self.clock.now_ms() + ttl * 1000
        with self._lock:
            self._data[key] = (str(value), expires_at_ms)

    def list(self, prefix: str, limit: int = DEFAULT_LIST_LIMIT) -> List[str]:
        now_ms = self.clock.now_ms()
        with self._lock:
            keys = sorted(
                key for key, (_, exp) in self._data.items()
                if key.startswith(prefix) and self._is_live(exp, now_ms)
            )
        return keys[:max(0, limit)]
