"""Datetime utilities for timezone-aware operations."""

from datetime import datetime, timezone

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime object is timezone-aware and in UTC.

    Naive datetimes (as returned by SQLite) are assumed to be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later`` (never negative)."""
    delta = ensure_utc(later) - ensure_utc(earlier)
    return max(delta.total_seconds(), 0.0) / SECONDS_PER_DAY


def start_of_utc_day(dt: datetime) -> datetime:
    """Midnight UTC of the day containing ``dt``."""
    return ensure_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)
