"""UTC-everywhere time handling for tokens, sessions and lockouts."""

import math
from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Normalize a timestamp read from the database to UTC.

    Columns declared without a time zone come back naive; they are stored
    in UTC, so the zone is attached rather than converted.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_past(moment: datetime, now: datetime | None = None) -> bool:
    """True if moment is at or before now."""
    return as_utc(moment) <= (now or now_utc())


def minutes_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole minutes until moment, rounded up. Zero if already past."""
    seconds = (as_utc(moment) - (now or now_utc())).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)


def seconds_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole seconds until moment, rounded up. Zero if already past."""
    seconds = (as_utc(moment) - (now or now_utc())).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds)
