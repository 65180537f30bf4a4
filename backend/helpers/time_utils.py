"""
Timestamp helpers.

Columns are stored without a timezone (SQLite drops it), so values read back
are naive UTC. These helpers normalize before doing arithmetic.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> int:
    """Whole hours from start to end, rounded to nearest."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return round(seconds / 3600)


def hours_ago(hours: float, now: datetime | None = None) -> datetime:
    """Cutoff timestamp a number of hours before now."""
    return (now or utc_now()) - timedelta(hours=hours)
