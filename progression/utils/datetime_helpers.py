"""
Date/time helpers

All timestamps are stored and compared in UTC. Calendar logic (streak day
gaps, season windows, quest selection) works on UTC dates.
"""

from datetime import datetime, date, timedelta
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def today_utc() -> date:
    """Current calendar date in UTC"""
    return now_utc().date()


def to_utc(dt: datetime) -> datetime:
    """Convert a datetime to UTC; naive values are assumed to already be UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from earlier to later (negative if reversed)"""
    return (later - earlier).days


def sunday_based_weekday(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6"""
    return (day.weekday() + 1) % 7


def week_bounds(day: date) -> tuple[date, date]:
    """Sunday..Saturday calendar week containing day"""
    start = day - timedelta(days=sunday_based_weekday(day))
    return start, start + timedelta(days=6)


def is_weekend(dt: datetime) -> bool:
    """Saturday or Sunday"""
    return dt.weekday() >= 5


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of day"""
    return datetime(day.year, day.month, day.day, tzinfo=UTC)
