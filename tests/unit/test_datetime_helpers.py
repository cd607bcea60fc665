"""Unit tests for Datetime Helpers (chemlab/utils/datetime_helpers.py)"""
import pytest
from datetime import datetime, date, timezone, timedelta

from chemlab.utils.datetime_helpers import (
    now_utc,
    today_utc,
    ensure_utc,
    to_date,
    seconds_since,
)


# ============================================================================
# UTC Time Tests
# ============================================================================

def test_now_utc_returns_utc_time():
    result = now_utc()

    assert result.tzinfo == timezone.utc
    assert isinstance(result, datetime)


def test_now_utc_is_current():
    """Test that now_utc returns current time"""
    before = datetime.now(timezone.utc)
    result = now_utc()
    after = datetime.now(timezone.utc)

    assert before <= result <= after


def test_today_utc():
    assert today_utc() == datetime.now(timezone.utc).date()


# ============================================================================
# Normalization Tests
# ============================================================================

def test_ensure_utc_naive_assumed_utc():
    result = ensure_utc(datetime(2026, 3, 10, 8, 30))
    assert result == datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)


def test_ensure_utc_converts_offset():
    """Vietnam time (UTC+7) converts back to the previous UTC day before 07:00"""
    vietnam = timezone(timedelta(hours=7))
    result = ensure_utc(datetime(2026, 3, 10, 6, 0, tzinfo=vietnam))

    assert result == datetime(2026, 3, 9, 23, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value,expected", [
    (None, None),
    (date(2026, 3, 10), date(2026, 3, 10)),
    (datetime(2026, 3, 10, 23, 59, tzinfo=timezone.utc), date(2026, 3, 10)),
    ("2026-03-10", date(2026, 3, 10)),
])
def test_to_date(value, expected):
    assert to_date(value) == expected


# ============================================================================
# Elapsed Time Tests
# ============================================================================

def test_seconds_since_none():
    assert seconds_since(None) is None


def test_seconds_since_explicit_end():
    start = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
    end = start + timedelta(minutes=2, seconds=5)

    assert seconds_since(start, end) == 125


def test_seconds_since_clock_skew_is_zero():
    """A start time in the future never yields a negative duration"""
    start = now_utc() + timedelta(minutes=5)
    assert seconds_since(start) == 0
