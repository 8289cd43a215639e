"""
Admission control for booking creation.

Limits inventory blocking and cancellation loops before a booking is created:

- at most MAX_ACTIVE_BOOKINGS pending/confirmed bookings per user
- a cooldown between creations that grows with recent cancellations
- users whose last five bookings were all cancelled are sent to manual review

A high overall cancellation rate is only logged.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from rentaly.config import MAX_ACTIVE_BOOKINGS
from rentaly.db.readers.bookings import (
    booking_status_counts,
    count_active_bookings,
    count_cancellations_since,
    last_booking_created_at,
    recent_booking_statuses,
)
from rentaly.exceptions import AdmissionDeniedError
from rentaly.metrics import admission_denials
from rentaly.utils.datetime import ensure_utc, utc_now

logger = structlog.get_logger(__name__)

CANCELLATION_WINDOW = timedelta(days=30)
REVIEW_WINDOW = 5
HIGH_CANCELLATION_RATE = 0.8

# (minimum recent cancellations, cooldown minutes), highest first
COOLDOWN_STEPS = ((5, 60), (3, 30), (2, 15))
DEFAULT_COOLDOWN_MINUTES = 5


def cooldown_minutes(recent_cancellations: int) -> int:
    """
    Cooldown between two booking creations.

    Args:
        recent_cancellations: Cancelled bookings created in the last 30 days

    Returns:
        int: Minutes the user must wait after their last booking
    """
    for threshold, minutes in COOLDOWN_STEPS:
        if recent_cancellations >= threshold:
            return minutes
    return DEFAULT_COOLDOWN_MINUTES


def _deny(message: str, code: str, status_code: int = 429, **details: object) -> None:
    admission_denials.labels(reason=code).inc()
    logger.warning("booking_admission_denied", reason=code, **details)
    err = AdmissionDeniedError(message, code=code, details=dict(details))
    err.status_code = status_code
    raise err


def enforce_booking_admission(
    db_engine: Engine, user_id: str, now: Optional[datetime] = None
) -> None:
    """
    Refuse a new booking for users that hit a limit.

    Args:
        db_engine: SQLAlchemy Engine
        user_id: User about to create a booking
        now: Current instant (defaults to utc_now())

    Raises:
        AdmissionDeniedError: 429 active_booking_limit or booking_cooldown,
            403 flagged_for_review
    """
    now = ensure_utc(now) if now is not None else utc_now()

    with db_engine.connect() as conn:
        active = count_active_bookings(conn, user_id)
        if active >= MAX_ACTIVE_BOOKINGS:
            _deny(
                f"Maximum active bookings reached ({MAX_ACTIVE_BOOKINGS}). "
                "Please complete or cancel existing bookings first.",
                "active_booking_limit",
                user_id=user_id,
                active_bookings=active,
                limit=MAX_ACTIVE_BOOKINGS,
            )

        recent_cancellations = count_cancellations_since(conn, user_id, now - CANCELLATION_WINDOW)
        minutes = cooldown_minutes(recent_cancellations)
        last_created = last_booking_created_at(conn, user_id)
        if last_created is not None:
            ready_at = ensure_utc(last_created) + timedelta(minutes=minutes)
            if ready_at > now:
                remaining = math.ceil((ready_at - now).total_seconds() / 60)
                _deny(
                    f"Please wait {remaining} minute(s) before creating another booking.",
                    "booking_cooldown",
                    user_id=user_id,
                    cooldown_minutes=minutes,
                    recent_cancellations=recent_cancellations,
                    remaining_minutes=remaining,
                )

        statuses = recent_booking_statuses(conn, user_id, REVIEW_WINDOW)
        if len(statuses) == REVIEW_WINDOW and all(s == "cancelled" for s in statuses):
            _deny(
                "Your account has been flagged for review due to a high cancellation rate. "
                "Please contact support.",
                "flagged_for_review",
                status_code=403,
                user_id=user_id,
                pattern="all_last_5_cancelled",
            )

        counts = booking_status_counts(conn, user_id)

    total = sum(counts.values())
    cancelled = counts.get("cancelled", 0)
    if total >= REVIEW_WINDOW and cancelled / total > HIGH_CANCELLATION_RATE:
        logger.warning(
            "high_cancellation_rate",
            user_id=user_id,
            total_bookings=total,
            cancelled_bookings=cancelled,
            cancellation_rate=round(cancelled / total, 2),
        )
