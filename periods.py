from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Sequence

from recurrence import add_months, days_in_month

WEEK_STARTS_ON = 6  # Sunday, in date.weekday() numbering


class Granularity(str, Enum):
    day = "day"
    week = "week"
    month = "month"


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class Bucket:
    label: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=days_in_month(d.year, d.month))


def week_start(d: date) -> date:
    offset = (d.weekday() - WEEK_STARTS_ON) % 7
    return d - timedelta(days=offset)


def week_end(d: date) -> date:
    return week_start(d) + timedelta(days=6)


def current_month(today: date) -> Period:
    return Period("this_month", month_start(today), month_end(today))


def current_week(today: date) -> Period:
    return Period("this_week", week_start(today), week_end(today))


def current_year(today: date) -> Period:
    return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))


def last_months(today: date, months: int) -> Period:
    """The ``months`` calendar months ending with the current one."""
    if months < 1:
        raise ValueError("months must be at least 1")
    first = month_start(add_months(today, -(months - 1)))
    return Period(f"last_{months}_months", first, month_end(today))


def last_days(today: date, days: int) -> Period:
    if days < 1:
        raise ValueError("days must be at least 1")
    return Period(f"last_{days}_days", today - timedelta(days=days - 1), today)


def resolve_range(
    start: Optional[date],
    end: Optional[date],
    *,
    today: date,
) -> Period:
    """Fill missing bounds from the current calendar month."""
    this_month = current_month(today)
    if start is None and end is None:
        return this_month
    resolved_start = start or this_month.start
    resolved_end = end or this_month.end
    if resolved_start > resolved_end:
        raise ValueError("Start date must be before end date")
    return Period("custom", resolved_start, resolved_end)


def _label(granularity: Granularity, start: date, end: date, index: int) -> str:
    if granularity == Granularity.day:
        return f"{start:%b} {start.day}, {start.year}"
    if granularity == Granularity.week:
        return f"Week {index} ({start:%b} {start.day} - {end:%b} {end.day})"
    return f"{start:%b %Y}"


def bucketize(
    range_start: date, range_end: date, granularity: Granularity
) -> list[Bucket]:
    """Split ``[range_start, range_end]`` into contiguous, ordered buckets.

    Week buckets break on Sundays and month buckets on the 1st; the first and
    last bucket are clipped to the range so the buckets cover it exactly.
    Empty buckets are kept.
    """
    granularity = Granularity(granularity)
    if range_start > range_end:
        raise ValueError("Start date must be before end date")

    buckets: list[Bucket] = []
    cursor = range_start
    while cursor <= range_end:
        if granularity == Granularity.day:
            natural_end = cursor
        elif granularity == Granularity.week:
            natural_end = week_end(cursor)
        else:
            natural_end = month_end(cursor)
        end = min(natural_end, range_end)
        buckets.append(
            Bucket(_label(granularity, cursor, end, len(buckets) + 1), cursor, end)
        )
        cursor = end + timedelta(days=1)
    return buckets


def bucket_index(buckets: Sequence[Bucket], value: date) -> Optional[int]:
    """Index of the bucket holding ``value``, or None when outside all of them."""
    if not buckets:
        return None
    starts = [bucket.start for bucket in buckets]
    idx = bisect_right(starts, value) - 1
    if idx < 0 or not buckets[idx].contains(value):
        return None
    return idx
