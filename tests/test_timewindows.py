from datetime import datetime, timezone

import pytest

from friction_router.core.timewindows import (
    MIN_DAILY_WINDOW_SECONDS,
    day_stamp,
    previous_day_stamps,
    seconds_until_next_midnight,
)

SYDNEY = "Australia/Sydney"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_plain_day():
    # 13:00 AEDT
    assert seconds_until_next_midnight(utc(2026, 3, 10, 2, 0, 0), SYDNEY) == 11 * 3600


def test_day_that_ends_daylight_saving_is_25_hours():
    # DST ends 2026-04-05 03:00 AEDT -> 02:00 AEST. Local midnight that
    # starts the day is 13:00 UTC on the 4th; the next is 14:00 UTC on the 5th.
    start_of_day = utc(2026, 4, 4, 13, 0, 0)
    assert seconds_until_next_midnight(start_of_day, SYDNEY) == 25 * 3600


def test_day_that_starts_daylight_saving_is_23_hours():
    # DST starts 2026-10-04 02:00 AEST -> 03:00 AEDT.
    start_of_day = utc(2026, 10, 3, 14, 0, 0)
    assert seconds_until_next_midnight(start_of_day, SYDNEY) == 23 * 3600


def test_rounds_partial_seconds_up():
    now = datetime(2026, 3, 10, 2, 0, 0, 500_000, tzinfo=timezone.utc)
    assert seconds_until_next_midnight(now, SYDNEY) == 11 * 3600


def test_near_midnight_is_clamped():
    assert seconds_until_next_midnight(utc(2026, 3, 10, 12, 59, 30), SYDNEY) == MIN_DAILY_WINDOW_SECONDS


def test_naive_datetime_rejected():
    with pytest.raises(ValueError):
        seconds_until_next_midnight(datetime(2026, 3, 10, 2, 0, 0), SYDNEY)


def test_day_stamp_uses_reference_timezone():
    # 14:30 UTC on the 9th is already the 10th in Sydney.
    assert day_stamp(utc(2026, 3, 9, 14, 30), SYDNEY) == "2026-03-10"
    assert day_stamp(utc(2026, 3, 9, 14, 30), "UTC") == "2026-03-09"


def test_previous_day_stamps_newest_first():
    assert previous_day_stamps(utc(2026, 3, 1, 2, 0), SYDNEY, 3) == ["2026-03-01", "2026-02-28", "2026-02-27"]
