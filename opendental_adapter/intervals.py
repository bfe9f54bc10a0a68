"""Time interval helpers shared by conflict detection and slot search."""
from __future__ import annotations

from datetime import date, datetime, timedelta

from .exceptions import InvalidDuration
from .models import TimeInterval


def to_interval(start: datetime, duration_minutes: int) -> TimeInterval:
    """Return the half-open interval covered by an appointment."""
    if duration_minutes <= 0:
        raise InvalidDuration(duration_minutes)
    return TimeInterval(start=start, end=start + timedelta(minutes=duration_minutes))


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Strict overlap. Intervals that only touch at a boundary do not overlap."""
    return a.start < b.end and b.start < a.end


def expand(interval: TimeInterval, minutes: int) -> TimeInterval:
    pad = timedelta(minutes=minutes)
    return TimeInterval(start=interval.start - pad, end=interval.end + pad)


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return [midnight, next midnight) of the day containing ``moment``, keeping its tzinfo."""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def at_hour(day: date, hour: int, like: datetime) -> datetime:
    """Combine ``day`` and ``hour`` using the tzinfo of ``like``."""
    return datetime(day.year, day.month, day.day, hour, tzinfo=like.tzinfo)


def end_hour(interval: TimeInterval) -> int:
    # an interval running past midnight counts its end hour from the start date
    days = (interval.end.date() - interval.start.date()).days
    return interval.end.hour + 24 * days
