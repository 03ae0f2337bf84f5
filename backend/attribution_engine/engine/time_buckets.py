"""
Time-Bucket Selection
=====================

WHAT: Decides hourly vs daily granularity and normalizes date ranges.
WHY: Single-day views need intraday resolution; anything longer is daily.

Rules:
  - Same calendar day (day span 0) -> hourly buckets
  - Anything else -> daily buckets (no multi-day hourly mode)
  - End dates are inclusive: the upper bound is advanced one day and rows
    are filtered with a strict `<`, so orders at 23:59 on the end date count

Timezones:
  Stored timestamps are naive UTC. Views that bucket in the shop's own
  calendar (cohorts, dashboard) convert them with to_local() and bound
  their queries with DateRange.utc_bounds(). Unknown or missing zone names
  fall back to UTC.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from attribution_engine.errors import InvalidFilter

logger = logging.getLogger(__name__)


class Granularity(str, Enum):
    hourly = "hourly"
    daily = "daily"


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range of a request."""

    start_date: date
    end_date: date

    def __post_init__(self):
        validate_date_range(self.start_date, self.end_date)

    @property
    def lower_bound(self) -> datetime:
        """Inclusive lower timestamp bound (start of start_date)."""
        return datetime.combine(self.start_date, time.min)

    @property
    def upper_bound(self) -> datetime:
        """Exclusive upper timestamp bound (start of the day after end_date)."""
        return datetime.combine(make_end_date_inclusive(self.end_date), time.min)

    @property
    def granularity(self) -> Granularity:
        return select_granularity(self.start_date, self.end_date)

    def contains(self, moment: datetime) -> bool:
        return self.lower_bound <= moment < self.upper_bound

    def utc_bounds(self, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
        """Naive UTC [lower, upper) bounds of the range's days in `tz`."""
        if tz is None:
            return self.lower_bound, self.upper_bound
        return (
            local_day_start_utc(self.start_date, tz),
            local_day_start_utc(make_end_date_inclusive(self.end_date), tz),
        )


def validate_date_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise InvalidFilter("Start date must not be after end date")


def make_end_date_inclusive(end_date: date) -> date:
    """Advance end date by one day for use with a strict `<` comparison."""
    return end_date + timedelta(days=1)


def days_between(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days


def should_use_hourly(start_date: date, end_date: date) -> bool:
    return days_between(start_date, end_date) == 0


def select_granularity(start_date: date, end_date: date) -> Granularity:
    if should_use_hourly(start_date, end_date):
        return Granularity.hourly
    return Granularity.daily


def bucket_start(moment: Union[datetime, date], granularity: Granularity) -> datetime:
    """Truncate a timestamp to the start of its bucket."""
    if not isinstance(moment, datetime):
        moment = datetime.combine(moment, time.min)
    if granularity == Granularity.hourly:
        return moment.replace(minute=0, second=0, microsecond=0)
    return datetime.combine(moment.date(), time.min)


def format_bucket(bucket: datetime, granularity: Granularity) -> str:
    """Render a bucket key: 'YYYY-MM-DD HH:00:00' for hourly, 'YYYY-MM-DD' for daily."""
    if granularity == Granularity.hourly:
        return bucket.strftime("%Y-%m-%d %H:%M:%S")
    return bucket.date().isoformat()


# =============================================================================
# SHOP TIMEZONES
# =============================================================================

def resolve_timezone(name: Optional[str]) -> tzinfo:
    """IANA zone for a shop, falling back to UTC if unset or unknown."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("[TIME] Invalid timezone '%s', falling back to UTC", name)
        return timezone.utc


def to_local(moment, tz: tzinfo):
    """Convert a stored (naive UTC) timestamp to naive wall-clock time in `tz`.

    Dates and None pass through unchanged.
    """
    if not isinstance(moment, datetime):
        return moment
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).replace(tzinfo=None)


def local_day_start_utc(day: date, tz: tzinfo) -> datetime:
    """Naive UTC instant at which `day` starts in `tz`."""
    local_midnight = datetime.combine(day, time.min).replace(tzinfo=tz)
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(tz: tzinfo) -> date:
    return datetime.now(tz).date()
