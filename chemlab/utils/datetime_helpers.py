"""
Date/time helpers

All stored timestamps are UTC. Streak days are UTC calendar dates so every
learner's "today" changes at 00:00 UTC (07:00 in Vietnam).
"""

import logging
from datetime import datetime, date, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Today's UTC calendar date (the day boundary used for streaks)"""
    return now_utc().date()


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime, assuming UTC when naive"""
    if dt.tzinfo is None:
        logger.debug(f"Received naive datetime, assuming UTC: {dt}")
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_date(value: Optional[Union[date, datetime, str]]) -> Optional[date]:
    """Normalize a stored activity date (date, datetime or ISO string) to a date"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def seconds_since(start: Optional[datetime], end: Optional[datetime] = None) -> Optional[int]:
    """Whole seconds elapsed between ``start`` and ``end`` (now by default)"""
    if start is None:
        return None
    end = ensure_utc(end) if end else now_utc()
    return max(0, int((end - ensure_utc(start)).total_seconds()))
