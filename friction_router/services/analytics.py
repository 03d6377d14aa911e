"""
Usage Analytics - anonymized, advisory counters.

Recording is fire-and-forget: `UsageRecorder.record` swallows every error
so analytics can never affect a chat response. Aggregates are updated by
read-modify-write and can lose increments under concurrent writers; the
numbers are advisory, never billed or enforced.

Privacy:
- User ids are stored only as salted SHA-256 prefixes
- No message content is ever persisted
- Admin views report unique-user counts as buckets ("50-100"), not exact values
"""
import hashlib
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.logging_config import get_logger
from friction_router.core.timewindows import day_stamp, previous_day_stamps
from friction_router.store.base import KeyValueStore

logger = get_logger(__name__)

DAY_PREFIX = "stats:day:"
USER_PREFIX = "user:"
SECONDS_PER_DAY = 86_400

# Beyond this the bucket is already "500+", so stop growing the set.
MAX_TRACKED_USERS_PER_DAY = 1000

COUNT_BUCKETS: List[Tuple[int, str]] = [
    (10, "1-10"),
    (50, "10-50"),
    (100, "50-100"),
    (500, "100-500"),
]


def bucket_count(n: int) -> str:
    """Deliberately imprecise count for admin views."""
    if n <= 0:
        return "0"
    for upper, label in COUNT_BUCKETS:
        if n <= upper:
            return label
    return f"{COUNT_BUCKETS[-1][0]}+"


def hash_user(user_id: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{user_id}".encode("utf-8")).hexdigest()[:16]


@dataclass
class UsageEvent:
    user_id: str
    model: str


@dataclass
class DailyAggregate:
    """One calendar day of usage, stored as JSON under stats:day:{date}."""
    message_count: int = 0
    model_counts: Counter = field(default_factory=Counter)
    unique_user_hashes: Set[str] = field(default_factory=set)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DailyAggregate":
        if not isinstance(data, dict):
            return cls()
        models = data.get("modelCounts") or {}
        users = data.get("uniqueUserHashes") or []
        return cls(
            message_count=int(data.get("messageCount") or 0),
            model_counts=Counter({str(k): int(v) for k, v in models.items()}),
            unique_user_hashes=set(str(u) for u in users),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messageCount": self.message_count,
            "modelCounts": dict(self.model_counts),
            "uniqueUserHashes": sorted(self.unique_user_hashes),
        }


class UsageRecorder:
    """
    Best-effort writer for daily aggregates and per-user activity.

    Example:
        >>> recorder = UsageRecorder(store)
        >>> recorder.record(UsageEvent(user_id="110169...", model="gpt"))
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        salt: str = "friction",
        timezone: str = "Australia/Sydney",
        retention_days: int = 30,
        user_retention_days: int = 90,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.salt = salt
        self.timezone = timezone
        self.retention_days = retention_days
        self.user_retention_days = user_retention_days

    def record(self, event: UsageEvent) -> None:
        """Update counters; never raises."""
        try:
            self._record(event)
        except Exception as e:
            logger.warning(f"Usage analytics update skipped: {e}")

    def _record(self, event: UsageEvent) -> None:
        stamp = day_stamp(self.clock.now(), self.timezone)
        user_hash = hash_user(event.user_id, self.salt)

        day_key = f"{DAY_PREFIX}{stamp}"
        aggregate = DailyAggregate.from_dict(self.store.get_json(day_key))
        aggregate.message_count += 1
        aggregate.model_counts[event.model] += 1
        if len(aggregate.unique_user_hashes) < MAX_TRACKED_USERS_PER_DAY:
            aggregate.unique_user_hashes.add(user_hash)
        self.store.put_json(day_key, aggregate.to_dict(), self.retention_days * SECONDS_PER_DAY)

        user_key = f"{USER_PREFIX}{user_hash}"
        activity = self.store.get_json(user_key)
        if not isinstance(activity, dict):
            activity = {}
        self.store.put_json(
            user_key,
            {
                "firstSeen": activity.get("firstSeen") or stamp,
                "lastSeen": stamp,
                "messages": int(activity.get("messages") or 0) + 1,
            },
            self.user_retention_days * SECONDS_PER_DAY,
        )


class AnalyticsReader:
    """Admin-facing views over the recorded aggregates."""

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None, timezone: str = "Australia/Sydney"):
        self.store = store
        self.clock = clock or SystemClock()
        self.timezone = timezone

    def daily_stats(self, days: int = 7) -> List[Dict[str, Any]]:
        """Per-day totals, newest first, with bucketed unique users."""
        results = []
        for stamp in previous_day_stamps(self.clock.now(), self.timezone, days):
            aggregate = DailyAggregate.from_dict(self.store.get_json(f"{DAY_PREFIX}{stamp}"))
            results.append({
                "date": stamp,
                "messages": aggregate.message_count,
                "models": dict(aggregate.model_counts),
                "uniqueUsers": bucket_count(len(aggregate.unique_user_hashes)),
            })
        return results

    def user_list(self, limit: int = 100) -> Tuple[List[Dict[str, Any]], str]:
        """
        Anonymized user activity and a bucketed approximate total.

        The total comes from a capped listing, so it is a lower bound once
        the cap is reached; bucketing absorbs that imprecision.
        """
        keys = self.store.list(USER_PREFIX, limit=MAX_TRACKED_USERS_PER_DAY)
        users = []
        for key in keys[:limit]:
            activity = self.store.get_json(key)
            if not isinstance(activity, dict):
                continue
            users.append({
                "id": key[len(USER_PREFIX):],
                "firstSeen": activity.get("firstSeen"),
                "lastSeen": activity.get("lastSeen"),
                "messages": int(activity.get("messages") or 0),
            })
        users.sort(key=lambda u: u["lastSeen"] or "", reverse=True)
        return users, bucket_count(len(keys))
