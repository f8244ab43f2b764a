"""UTC calendar helpers shared by the automation engines.

Every function takes the reference instant explicitly so that callers
(and tests) control "now".
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalise a datetime to UTC-aware regardless of input tz-awareness.

    SQLite returns naive datetimes; this keeps all comparisons between
    UTC-aware values.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    """UTC midnight of the day containing *now*."""
    return as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


def date_key(now: datetime) -> str:
    """UTC calendar day of *now* as ``YYYY-MM-DD``."""
    return as_utc(now).strftime("%Y-%m-%d")


def week_start_date(now: datetime) -> str:
    """Most recent Monday (UTC) on or before *now*, as ``YYYY-MM-DD``.

    A Sunday maps to the Monday six days earlier.
    """
    day = start_of_day(now)
    monday = day - timedelta(days=day.weekday())
    return monday.strftime("%Y-%m-%d")


def whole_days(delta: timedelta) -> int:
    """Floor of *delta* in days (negative deltas floor towards -inf)."""
    return delta // ONE_DAY


def isoformat(dt: datetime | None) -> str | None:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None
