"""
Rate Limiter - Admission control in front of metered LLM calls.

This module decides, before any provider call is made, whether a request
may proceed. It combines three fixed windows stored in the key-value store:

1. Per-user burst   (u:{user}:burst)         W1 seconds, L1 requests
2. Per-IP burst     (ip:{ip}:burst)          W1 seconds, L2 requests
3. Per-user daily   (u:{user}:day:{date})    until local midnight, L3 requests

Checks run in that order and the first failure wins, so an abusive caller
costs at most one store round-trip pair per check actually reached.

Consistency contract:
    The store offers no atomic increment, so each bump is a non-atomic
    read-then-write. Two concurrent requests from the same subject can both
    read count=N and both write N+1. Limits are set low enough that the
    resulting undercount does not change cost exposure. The retry-after
    contract below holds regardless.

Failure contract:
    check_admission never raises. If the store is unreachable the request
    is denied (fail-closed) with reason `store_unavailable`.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.exceptions import RateLimitExceeded
from friction_router.core.logging_config import get_logger, short_id
from friction_router.core.timewindows import day_stamp, seconds_until_next_midnight
from friction_router.models.auth import VerifiedIdentity
from friction_router.store.base import KeyValueStore

logger = get_logger(__name__)


class AdmissionReason(str, Enum):
    OK = "ok"
    USER_BURST = "user_burst"
    IP_BURST = "ip_burst"
    DAILY_LIMIT = "daily_limit"
    STORE_UNAVAILABLE = "store_unavailable"


DENIAL_MESSAGES = {
    AdmissionReason.USER_BURST: "Slow down a bit (friction time).",
    AdmissionReason.IP_BURST: "Too many requests from this network.",
    AdmissionReason.DAILY_LIMIT: "Daily limit reached. Come back tomorrow.",
    AdmissionReason.STORE_UNAVAILABLE: "Usage limits are temporarily unavailable. Please retry shortly.",
}


@dataclass(frozen=True)
class CounterRecord:
    """
    Stored state of one counting window, serialized as "count|startMillis".
    """
    count: int
    window_start_ms: int

    def serialize(self) -> str:
        return f"{self.count}|{self.window_start_ms}"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["CounterRecord"]:
        """Decode a stored record; unreadable values count as absent."""
        if not raw:
            return None
        parts = raw.split("|")
        if len(parts) != 2:
            return None
        try:
            count, start = int(parts[0]), int(parts[1])
        except ValueError:
            return None
        if count < 0:
            return None
        return cls(count=count, window_start_ms=start)


@dataclass(frozen=True)
class CounterResult:
    count: int
    retry_after_seconds: int
    window_start_ms: int


@dataclass(frozen=True)
class AdmissionDecision:
    """
    Ephemeral allow/deny verdict. Never persisted.

    retry_after_seconds is always >= 1, including on allowed decisions.
    """
    allowed: bool
    reason: AdmissionReason = AdmissionReason.OK
    retry_after_seconds: int = 1

    @property
    def message(self) -> str:
        return DENIAL_MESSAGES.get(self.reason, "Request allowed.")

    def to_exception(self) -> RateLimitExceeded:
        """Build the 429 error for a denied decision."""
        return RateLimitExceeded(
            retry_after=self.retry_after_seconds,
            reason=self.reason.value,
            message=self.message,
        )


class WindowCounter:
    """
    Fixed-window counter over the key-value store.

    Two window shapes are supported:
    - rolling: the window starts at the first hit and lasts `window_seconds`
    - fixed end: the caller already knows when the window ends (e.g. local
      midnight); `window_seconds` is the time remaining until then and the
      key itself is scoped to the calendar period
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def bump(self, key: str, window_seconds: int, now_ms: int, fixed_end: bool = False) -> CounterResult:
        """
        Read-increment-write one counter.

        A record whose window has elapsed but which the store has not yet
        evicted starts a fresh window at this write; earlier counts are
        never rewritten.

        Args:
            key: Composite key, e.g. "u:{user}:burst"
            window_seconds: Window length (rolling) or time left (fixed end)
            now_ms: Current epoch milliseconds
            fixed_end: True for calendar windows

        Returns:
            CounterResult with the post-increment count and retry-after hint

        Raises:
            StoreUnavailable: If the store cannot be read or written
        """
        window_seconds = max(1, int(window_seconds))
        window_ms = window_seconds * 1000

        record = CounterRecord.parse(self.store.get(key))
        if record is None or (not fixed_end and now_ms - record.window_start_ms >= window_ms):
            record = CounterRecord(count=0, window_start_ms=now_ms)

        updated = CounterRecord(count=record.count + 1, window_start_ms=record.window_start_ms)

        if fixed_end:
            remaining_ms = window_ms
        else:
            # A start stamped slightly in the future by a skewed peer counts as now.
            elapsed_ms = max(0, now_ms - updated.window_start_ms)
            remaining_ms = window_ms - elapsed_ms
        retry_after = max(1, math.ceil(remaining_ms / 1000))

        self.store.put(key, updated.serialize(), ttl_seconds=window_seconds)

        return CounterResult(
            count=updated.count,
            retry_after_seconds=retry_after,
            window_start_ms=updated.window_start_ms,
        )


class AdmissionController:
    """
    Allow/deny decision for one request, computed before any provider call.

    Example:
        >>> controller = AdmissionController(store, user_burst_limit=5)
        >>> decision = controller.check_admission(identity, "203.0.113.7")
        >>> decision.allowed
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        burst_window_seconds: int = 10,
        user_burst_limit: int = 5,
        ip_burst_limit: int = 10,
        daily_limit: int = 200,
        reset_timezone: str = "Australia/Sydney",
        store_retry_after_seconds: int = 5,
    ):
        self.store = store
        self.counter = WindowCounter(store)
        self.clock = clock or SystemClock()
        self.burst_window_seconds = burst_window_seconds
        self.user_burst_limit = user_burst_limit
        self.ip_burst_limit = ip_burst_limit
        self.daily_limit = daily_limit
        self.reset_timezone = reset_timezone
        self.store_retry_after_seconds = max(1, store_retry_after_seconds)

    @classmethod
    def from_settings(cls, settings, store: KeyValueStore, clock: Optional[Clock] = None) -> "AdmissionController":
        return cls(
            store=store,
            clock=clock,
            burst_window_seconds=settings.burst_window_seconds,
            user_burst_limit=settings.user_burst_limit,
            ip_burst_limit=settings.ip_burst_limit,
            daily_limit=settings.daily_limit,
            reset_timezone=settings.reset_timezone,
            store_retry_after_seconds=settings.store_retry_after_seconds,
        )

    def check_admission(self, identity: VerifiedIdentity, client_ip: str) -> AdmissionDecision:
        """
        Evaluate burst and daily windows for this caller.

        Args:
            identity: Verified caller
            client_ip: Best-known client address ("unknown" if absent)

        Returns:
            AdmissionDecision; never raises
        """
        try:
            return self._evaluate(identity, client_ip)
        except Exception as e:
            # Fail closed: without the store there is no cost control.
            logger.error(f"Admission check failed closed for user={short_id(identity.user_id)}: {e}")
            return AdmissionDecision(
                allowed=False,
                reason=AdmissionReason.STORE_UNAVAILABLE,
                retry_after_seconds=self.store_retry_after_seconds,
            )

    def _evaluate(self, identity: VerifiedIdentity, client_ip: str) -> AdmissionDecision:
        now = self.clock.now()
        now_ms = self.clock.now_ms()
        user_id = identity.user_id

        user_burst = self.counter.bump(f"u:{user_id}:burst", self.burst_window_seconds, now_ms)
        if user_burst.count > self.user_burst_limit:
            return self._deny(AdmissionReason.USER_BURST, user_burst, user_id)

        ip_burst = self.counter.bump(f"ip:{client_ip or 'unknown'}:burst", self.burst_window_seconds, now_ms)
        if ip_burst.count > self.ip_burst_limit:
            return self._deny(AdmissionReason.IP_BURST, ip_burst, user_id)

        # Recomputed per call: the remaining duration shrinks through the day.
        remaining = seconds_until_next_midnight(now, self.reset_timezone)
        daily_key = f"u:{user_id}:day:{day_stamp(now, self.reset_timezone)}"
        daily = self.counter.bump(daily_key, remaining, now_ms, fixed_end=True)
        if daily.count > self.daily_limit_for(user_id):
            return self._deny(AdmissionReason.DAILY_LIMIT, daily, user_id)

        return AdmissionDecision(allowed=True)

    def daily_limit_for(self, user_id: str) -> int:
        """Per-user override from `limit:{user}:daily`, else the default quota."""
        raw = self.store.get(f"limit:{user_id}:daily")
        if raw is None:
            return self.daily_limit
        try:
            override = int(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed daily limit override for user={short_id(user_id)}")
            return self.daily_limit
        return override if override >= 0 else self.daily_limit

    def _deny(self, reason: AdmissionReason, result: CounterResult, user_id: str) -> AdmissionDecision:
        logger.warning(
            f"Admission denied: reason={reason.value} user={short_id(user_id)} "
            f"count={result.count} retry_after={result.retry_after_seconds}s"
        )
        return AdmissionDecision(
            allowed=False,
            reason=reason,
            retry_after_seconds=max(1, result.retry_after_seconds),
        )
