"""
Calendar helpers for the daily quota window.

The daily window resets at local midnight in a fixed reference timezone.
Both helpers are pure functions of (now, timezone) so they can be tested
without touching the wall clock.
"""
import math
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

# Near midnight the remaining window would shrink to a few seconds; clients
# would then retry into the next day's window almost immediately.
MIN_DAILY_WINDOW_SECONDS = 60


def _localize(now: datetime, tz_name: str) -> datetime:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(ZoneInfo(tz_name))


def seconds_until_next_midnight(now: datetime, tz_name: str) -> int:
    """
    Seconds from `now` until the next local midnight in `tz_name`.

    Computed on real instants, so DST transitions (23h or 25h days) are
    handled correctly. Never returns less than MIN_DAILY_WINDOW_SECONDS.

    Args:
        now: Aware datetime
        tz_name: IANA timezone name, e.g. "Australia/Sydney"

    Returns:
        Whole seconds, rounded up
    """
    local_now = _localize(now, tz_name)
    next_day = local_now.date() + timedelta(days=1)
    next_midnight = datetime.combine(next_day, time.min, tzinfo=local_now.tzinfo)
    # Same-tzinfo subtraction ignores offsets; compare in UTC instead.
    remaining = (
        next_midnight.astimezone(timezone.utc) - local_now.astimezone(timezone.utc)
    ).total_seconds()
    return max(MIN_DAILY_WINDOW_SECONDS, math.ceil(remaining))


def day_stamp(now: datetime, tz_name: str) -> str:
    """Local calendar date in `tz_name` as YYYY-MM-DD."""
    return _localize(now, tz_name).strftime("%Y-%m-%d")


def previous_day_stamps(now: datetime, tz_name: str, days: int) -> list:
    """The last `days` local dates, newest first (today included)."""
    today = _localize(now, tz_name).date()
    return [(today - timedelta(days=offset)).strftime("%Y-%m-%d") for offset in range(days)]
