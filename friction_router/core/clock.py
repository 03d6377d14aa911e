"""
Clock abstraction.

Every time-dependent component (store expiry, rate windows, identity cache,
daily reset) takes a Clock so tests can move time deterministically.
"""
from datetime import datetime, timezone


class Clock:
    """Source of the current time. Subclass to control time in tests."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        raise NotImplementedError

    def now_ms(self) -> int:
        """Return the current time in epoch milliseconds."""
        return int(self.now().timestamp() * 1000)


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
