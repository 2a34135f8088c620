"""
Timezone-aware datetime utilities for the review outreach engine.

Every timestamp the engine persists is UTC. SQLite hands naive datetimes back,
so values read from the database go through ensure_utc() before any
comparison or arithmetic.
"""

from datetime import datetime, timezone
from typing import Optional
import pytz


DEFAULT_TIMEZONE = 'America/New_York'


def utc_now() -> datetime:
    """
    Get the current UTC time as a timezone-aware datetime object.

    Returns:
        datetime: Current UTC time with timezone information
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime object is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC. None passes through so
    nullable columns can be normalised without a guard at every call site.

    Example:
        >>> naive_dt = datetime(2025, 1, 1, 12, 0, 0)
        >>> ensure_utc(naive_dt).tzinfo  # UTC
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def utc_to_local(dt: datetime, local_tz: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Convert a UTC datetime to a local timezone.

    Args:
        dt: UTC datetime (naive values are treated as UTC)
        local_tz: Target timezone name

    Returns:
        datetime: Datetime in the specified local timezone
    """
    utc_dt = ensure_utc(dt)
    local_timezone = pytz.timezone(local_tz)
    return utc_dt.astimezone(local_timezone)


def local_to_utc(dt: datetime, local_tz: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Convert a local datetime to UTC.

    Args:
        dt: Local datetime (may be naive or timezone-aware)
        local_tz: Source timezone name if dt is naive

    Returns:
        datetime: Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        local_timezone = pytz.timezone(local_tz)
        local_dt = local_timezone.localize(dt)
        return local_dt.astimezone(timezone.utc)
    return dt.astimezone(timezone.utc)


def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        pytz.timezone(name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def start_of_month(dt: datetime) -> datetime:
    """First instant of the UTC calendar month containing dt."""
    dt = ensure_utc(dt)
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_month(dt: datetime) -> datetime:
    """First instant of the UTC calendar month after the one containing dt."""
    first = start_of_month(dt)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def month_key(dt: datetime) -> str:
    """Quota period key, e.g. '2025-03'."""
    return ensure_utc(dt).strftime('%Y-%m')


def format_utc_iso(dt: Optional[datetime] = None) -> Optional[str]:
    """
    Format a datetime as an ISO 8601 string in UTC.

    Example:
        >>> format_utc_iso(datetime(2025, 1, 1, 12))
        '2025-01-01T12:00:00+00:00'
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def parse_utc_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string to a timezone-aware UTC datetime.

    Raises:
        ValueError: If the string is not ISO 8601
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'

    dt = datetime.fromisoformat(iso_string)
    return ensure_utc(dt)
