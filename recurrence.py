import logging
import math
from datetime import date, datetime, time, timedelta
from typing import TypeVar, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import BillFrequency

logger = logging.getLogger(__name__)

DateLike = TypeVar("DateLike", date, datetime)

SECONDS_PER_DAY = 24 * 60 * 60

# Frequency -> (days, months) added per unit.
FREQUENCY_STEPS: dict[BillFrequency, tuple[int, int]] = {
    BillFrequency.daily: (1, 0),
    BillFrequency.weekly: (7, 0),
    BillFrequency.biweekly: (14, 0),
    BillFrequency.monthly: (0, 1),
    BillFrequency.quarterly: (0, 3),
    BillFrequency.biannually: (0, 6),
    BillFrequency.annually: (0, 12),
}


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, as a naive datetime."""
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: DateLike, months: int) -> DateLike:
    """Calendar month arithmetic; days past the target month's end snap to its last day."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def _coerce_frequency(frequency: Union[BillFrequency, str]) -> BillFrequency:
    try:
        return BillFrequency(frequency)
    except ValueError:
        logger.warning(
            "unknown bill frequency %r, advancing by one month instead", frequency
        )
        return BillFrequency.monthly


def advance(
    value: DateLike, frequency: Union[BillFrequency, str], count: int = 1
) -> DateLike:
    """Move ``value`` forward by ``count`` units of ``frequency``.

    Unknown frequencies advance monthly. Month-based steps are computed from the
    original value in a single hop, so one call with ``count=2`` may differ from
    two chained calls when the first hop had to snap to a shorter month.
    """
    days, months = FREQUENCY_STEPS[_coerce_frequency(frequency)]
    if months:
        return add_months(value, months * count)
    return value + timedelta(days=days * count)


def as_instant(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def days_until(target: Union[date, datetime], now: datetime) -> int:
    """Whole days from ``now`` to ``target``, fractional remainders rounded up."""
    delta = as_instant(target) - now
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def to_local_naive(value: datetime) -> datetime:
    """Normalize an aware datetime to the configured zone; naive values pass through."""
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)
