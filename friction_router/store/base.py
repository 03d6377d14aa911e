"""
Key-Value Store contract.

The store is the only shared mutable resource in the router. It is treated
as eventually consistent:
- a write may not be visible to an immediately following read elsewhere
- `list` is capped and may be approximate
- there is no compare-and-swap and no multi-key transaction

Callers that read-modify-write (rate counters, analytics aggregates) must
tolerate lost updates.
"""
import json
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from friction_router.core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 1000


class KeyValueStore(ABC):
    """Abstract string store with per-key expiry and prefix listing."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store `value` under `key`, expiring after `ttl_seconds` if given."""

    @abstractmethod
    def list(self, prefix: str, limit: int = DEFAULT_LIST_LIMIT) -> List[str]:
        """Return at most `limit` live keys starting with `prefix`, sorted."""

    def check_connection(self) -> bool:
        """Cheap liveness probe used by the readiness endpoint."""
        return True

    def close(self) -> None:
        """Release backend resources."""

    def get_json(self, key: str) -> Optional[Any]:
        """
        Read and decode a JSON value.

        Corrupt payloads are treated as absent so a single bad write
        cannot wedge every later reader of that key.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable JSON value at key prefix={key.split(':')[0]}")
            return None

    def put_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self.put(key, json.dumps(value, separators=(",", ":")), ttl_seconds)


def validate_ttl(ttl_seconds: Optional[int]) -> Optional[int]:
    if ttl_seconds is None:
        return None
    ttl = int(ttl_seconds)
    if ttl < 1:
        raise ValueError("ttl_seconds must be >= 1")
    return ttl
