"""
Time helpers - Utilidades de fecha y hora
Timestamps are stored as naive UTC; reports are bucketed in local time.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention of the models."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(name: Optional[str]) -> Optional[tzinfo]:
    if not name:
        return None
    return ZoneInfo(name)


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Convert a stored timestamp to local time.

    Naive values are treated as UTC. Without a zone the value is returned
    unchanged.
    """
    if tz is None:
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def local_day(value: datetime, tz: Optional[tzinfo] = None) -> date:
    return to_local(value, tz).date()


def local_day_bounds(day: date, tz: Optional[tzinfo] = None):
    """Return the naive UTC [start, end) bounds of a local calendar day."""
    start = datetime(day.year, day.month, day.day)
    end = datetime.fromordinal(day.toordinal() + 1)
    if tz is None:
        return start, end
    start_utc = start.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
    end_utc = end.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
    return start_utc, end_utc
