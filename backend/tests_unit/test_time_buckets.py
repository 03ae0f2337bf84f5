"""
Time Bucket Selection Tests (Unit)
==================================

WHAT: Unit tests for hourly/daily granularity and inclusive date ranges.
WHY: Orders late on the end date must be counted, and single-day charts must be hourly.

REFERENCES:
- backend/attribution_engine/engine/time_buckets.py
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from attribution_engine.engine.time_buckets import (
    DateRange,
    Granularity,
    bucket_start,
    format_bucket,
    local_day_start_utc,
    make_end_date_inclusive,
    resolve_timezone,
    select_granularity,
    to_local,
)
from attribution_engine.errors import InvalidFilter


def test_same_day_range_is_hourly() -> None:
    assert select_granularity(date(2024, 5, 1), date(2024, 5, 1)) == Granularity.hourly


def test_two_day_range_is_daily() -> None:
    assert select_granularity(date(2024, 4, 30), date(2024, 5, 1)) == Granularity.daily


def test_end_date_is_inclusive() -> None:
    """An order at 23:59 on the end date belongs to the range."""
    date_range = DateRange(date(2024, 5, 1), date(2024, 5, 1))

    assert make_end_date_inclusive(date(2024, 5, 31)) == date(2024, 6, 1)
    assert date_range.contains(datetime(2024, 5, 1, 23, 59))
    assert not date_range.contains(datetime(2024, 5, 2, 0, 0))
    assert date_range.contains(datetime(2024, 5, 1, 0, 0))


def test_start_after_end_is_rejected() -> None:
    with pytest.raises(InvalidFilter):
        DateRange(date(2024, 5, 2), date(2024, 5, 1))


def test_bucket_formatting() -> None:
    moment = datetime(2024, 5, 1, 14, 37, 12)

    hourly = bucket_start(moment, Granularity.hourly)
    daily = bucket_start(moment, Granularity.daily)

    assert format_bucket(hourly, Granularity.hourly) == "2024-05-01 14:00:00"
    assert format_bucket(daily, Granularity.daily) == "2024-05-01"


def test_resolve_timezone() -> None:
    assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
    assert resolve_timezone(None) == timezone.utc
    assert resolve_timezone("") == timezone.utc


def test_unknown_timezone_falls_back_to_utc(caplog) -> None:
    with caplog.at_level("WARNING"):
        assert resolve_timezone("Not/A_Zone") == timezone.utc
    assert "Invalid timezone 'Not/A_Zone'" in caplog.text


def test_to_local_converts_naive_utc() -> None:
    berlin = ZoneInfo("Europe/Berlin")

    # Winter (UTC+1) and summer (UTC+2) offsets
    assert to_local(datetime(2024, 1, 31, 23, 30), berlin) == datetime(2024, 2, 1, 0, 30)
    assert to_local(datetime(2024, 7, 1, 22, 0), berlin) == datetime(2024, 7, 2, 0, 0)
    assert to_local(date(2024, 1, 31), berlin) == date(2024, 1, 31)
    assert to_local(None, berlin) is None


def test_local_day_bounds_in_utc() -> None:
    berlin = ZoneInfo("Europe/Berlin")
    date_range = DateRange(date(2024, 2, 1), date(2024, 2, 29))

    assert local_day_start_utc(date(2024, 2, 1), berlin) == datetime(2024, 1, 31, 23, 0)
    assert date_range.utc_bounds(berlin) == (datetime(2024, 1, 31, 23, 0), datetime(2024, 2, 29, 23, 0))
    assert date_range.utc_bounds() == (date_range.lower_bound, date_range.upper_bound)
    assert date_range.utc_bounds(timezone.utc) == (date_range.lower_bound, date_range.upper_bound)
