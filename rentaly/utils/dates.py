"""
Calendar-date helpers for booking ranges.

Booking and blocked-interval dates are stored as ``YYYY-MM-DD`` strings. For
that format lexicographic order equals chronological order, so ranges are
compared as strings and never as datetimes (no timezone drift).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from rentaly.config import BUSINESS_TIMEZONE
from rentaly.exceptions import InvalidDateError
from rentaly.utils.datetime import ensure_utc

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateInput = Union[str, date, datetime]


def is_valid_date(value: object) -> bool:
    """
    Return True when value is a ``YYYY-MM-DD`` string naming a real calendar day.

    ``2025-02-30`` matches the pattern but is rejected.
    """
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_date_format(value: object, field_name: str = "date") -> str:
    """
    Validate a strict ``YYYY-MM-DD`` date string.

    Args:
        value: Candidate value
        field_name: Name used in the error message

    Returns:
        str: The validated string, unchanged

    Raises:
        InvalidDateError: If value is not a real calendar date in YYYY-MM-DD form
    """
    if not is_valid_date(value):
        raise InvalidDateError(
            f"Invalid {field_name}: expected YYYY-MM-DD, got {value!r}",
            details={"field": field_name},
        )
    return value  # type: ignore[return-value]


def normalize_date(value: DateInput) -> str:
    """
    Convert a date-like value to its ``YYYY-MM-DD`` form.

    Datetimes are first moved to the business timezone so that an instant
    late in the UTC evening lands on the local calendar day. Naive datetimes
    are taken as UTC.

    Raises:
        InvalidDateError: If a string value is malformed
    """
    if isinstance(value, datetime):
        local = ensure_utc(value).astimezone(ZoneInfo(BUSINESS_TIMEZONE))
        return local.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and "T" in value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidDateError(f"Invalid date: {value!r}")
        return normalize_date(parsed)
    return validate_date_format(value)


def validate_date_range(start: str, end: str) -> tuple[str, str]:
    """
    Validate both ends of an inclusive range and their order.

    Returns:
        tuple[str, str]: (start, end)

    Raises:
        InvalidDateError: On malformed dates or when start is after end
    """
    validate_date_format(start, "start_date")
    validate_date_format(end, "end_date")
    if start > end:
        raise InvalidDateError(
            "start_date must be on or before end_date",
            code="invalid_date_range",
            details={"start_date": start, "end_date": end},
        )
    return start, end


def ranges_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """
    Inclusive overlap test on ``YYYY-MM-DD`` strings.

    Ranges that share a single boundary day overlap: a stay ending on the
    5th conflicts with one starting on the 5th.
    """
    return a_start <= b_end and a_end >= b_start


def expand_dates(start: str, end: str) -> list[str]:
    """Every calendar day from start to end, both included."""
    current = date.fromisoformat(start)
    last = date.fromisoformat(end)
    days = []
    while current <= last:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def count_days(start: str, end: str) -> int:
    """Number of calendar days in the inclusive range (a same-day booking is 1 day)."""
    return (date.fromisoformat(end) - date.fromisoformat(start)).days + 1


def clip_range(
    start: str, end: str, range_from: Optional[str], range_to: Optional[str]
) -> Optional[tuple[str, str]]:
    """
    Intersect [start, end] with an optional [range_from, range_to] window.

    Returns:
        The clipped range, or None when it falls entirely outside the window
    """
    lo = max(start, range_from) if range_from else start
    hi = min(end, range_to) if range_to else end
    if lo > hi:
        return None
    return lo, hi
