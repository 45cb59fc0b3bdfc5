"""UTC calendar-day helpers shared by check-ins, daily caps and cooldowns."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_today(now: datetime) -> date:
    """The UTC calendar date containing ``now``."""
    return ensure_utc(now).date()


def utc_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC day containing ``now``."""
    start = datetime.combine(utc_today(now), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def account_age_days(created_at: datetime, now: datetime) -> int:
    """Whole days since signup, floored. Never negative."""
    elapsed = ensure_utc(now) - ensure_utc(created_at)
    return max(0, elapsed // timedelta(days=1))
