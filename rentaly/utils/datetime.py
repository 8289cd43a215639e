"""UTC datetime utilities."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from rentaly.config import BUSINESS_TIMEZONE


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to a naive datetime read back from the database.

    SQLite returns DateTime(timezone=True) columns without tzinfo; every value we
    write is UTC, so a naive value is interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_today(now: datetime | None = None) -> date:
    """Return today's calendar date in the marketplace's business timezone."""
    moment = ensure_utc(now) if now is not None else utc_now()
    return moment.astimezone(ZoneInfo(BUSINESS_TIMEZONE)).date()
