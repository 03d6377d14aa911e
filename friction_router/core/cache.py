"""
Bounded in-process TTL cache.

Used by the identity verifier to avoid re-verifying the same credential on
every request. Entries are per-instance and best-effort: a cold instance
simply misses and re-verifies.
"""
import threading
from collections import OrderedDict
from typing import Any, Optional, Tuple

from friction_router.core.clock import Clock, SystemClock


class TTLCache:
    """
    LRU cache whose entries expire after a fixed time-to-live.

    Example:
        >>> cache = TTLCache(maxsize=2, ttl_seconds=60)
        >>> cache.set("a", 1)
        >>> cache.get("a")
        1
    """

    def __init__(self, maxsize: int = 1024, ttl_seconds: int = 3600, clock: Optional[Clock] = None):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self.ttl_ms = int(ttl_seconds * 1000)
        self.clock = clock or SystemClock()
        self._entries: "OrderedDict[str, Tuple[Any, int]]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock.now_ms() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl_ms = self.ttl_ms if ttl_seconds is None else int(ttl_seconds * 1000)
        with self._lock:
            self._entries[key] = (value, self.clock.now_ms() + ttl_ms)
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
