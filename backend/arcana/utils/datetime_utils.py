"""
Datetime utilities
Timezone-aware helpers; SQLite hands back naive datetimes, PostgreSQL aware ones
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time

    Returns:
        datetime: Current UTC time with timezone awareness

    Example:
        >>> from arcana.utils.datetime_utils import utc_now
        >>> now = utc_now()
        >>> print(now.tzinfo)
        UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string in UTC, or None"""
    normalized = ensure_utc(dt)
    return normalized.isoformat() if normalized else None
