import logging
from datetime import date, datetime, timedelta

import pytest

from models import BillFrequency
from recurrence import add_months, advance, days_until


def test_advance_day_based_frequencies():
    start = date(2026, 10, 18)
    assert advance(start, BillFrequency.daily) == date(2026, 10, 19)
    assert advance(start, BillFrequency.weekly) == date(2026, 10, 25)
    assert advance(start, BillFrequency.biweekly) == date(2026, 11, 1)


def test_advance_month_based_frequencies():
    start = date(2026, 1, 15)
    assert advance(start, BillFrequency.monthly) == date(2026, 2, 15)
    assert advance(start, BillFrequency.quarterly) == date(2026, 4, 15)
    assert advance(start, BillFrequency.biannually) == date(2026, 7, 15)
    assert advance(start, BillFrequency.annually) == date(2027, 1, 15)


def test_advance_snaps_to_end_of_shorter_month():
    assert advance(date(2024, 1, 31), BillFrequency.monthly) == date(2024, 2, 29)
    assert advance(date(2025, 1, 31), BillFrequency.monthly) == date(2025, 2, 28)
    assert advance(date(2024, 2, 29), BillFrequency.annually) == date(2025, 2, 28)
    assert add_months(date(2026, 3, 31), -1) == date(2026, 2, 28)


def test_advance_keeps_time_of_day():
    due = datetime(2026, 12, 31, 8, 30)
    assert advance(due, BillFrequency.monthly) == datetime(2027, 1, 31, 8, 30)
    assert advance(due, "WEEKLY") == datetime(2027, 1, 7, 8, 30)


@pytest.mark.parametrize("frequency", list(BillFrequency))
def test_repeated_advance_matches_single_multi_step(frequency):
    start = date(2026, 1, 15)
    twice = advance(advance(start, frequency), frequency)
    assert twice == advance(start, frequency, count=2)


def test_unknown_frequency_advances_monthly(caplog):
    with caplog.at_level(logging.WARNING, logger="recurrence"):
        result = advance(date(2026, 1, 15), "FORTNIGHTLY")
    assert result == date(2026, 2, 15)
    assert "FORTNIGHTLY" in caplog.text


def test_days_until_rounds_partial_days_up():
    now = datetime(2026, 10, 18, 9, 0)
    assert days_until(now - timedelta(days=3), now) == -3
    assert days_until(now + timedelta(hours=1), now) == 1
    assert days_until(now + timedelta(days=2, hours=3), now) == 3
    assert days_until(now - timedelta(hours=1), now) == 0
    assert days_until(date(2026, 10, 20), now) == 2

