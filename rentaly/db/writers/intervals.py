"""
Blocked-interval writes.

The conflict check and the insert must observe the same state, so both run in
the caller's transaction after ``lock_listing`` has serialised writers of the
same listing. On PostgreSQL that is a transaction-scoped advisory lock; SQLite
connections already hold the database write lock from ``BEGIN IMMEDIATE``.
"""

from __future__ import annotations

import hashlib

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Connection

from rentaly.db.readers.intervals import find_conflict
from rentaly.exceptions import DateConflictError
from rentaly.metrics import date_conflicts
from rentaly.models.blocked_intervals import BlockedInterval
from rentaly.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def listing_lock_key(listing_id: str, listing_type: str) -> int:
    """Stable signed 64-bit key for a listing, usable with pg_advisory_xact_lock."""
    digest = hashlib.blake2b(f"{listing_type}:{listing_id}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def lock_listing(conn: Connection, listing_id: str, listing_type: str) -> None:
    """
    Serialise interval writers of one listing until the transaction ends.

    Different listings use different keys and never wait for each other.
    """
    if conn.dialect.name != "postgresql":
        return
    conn.execute(select(func.pg_advisory_xact_lock(listing_lock_key(listing_id, listing_type))))


def insert_blocked_interval(
    conn: Connection,
    listing_id: str,
    listing_type: str,
    start: str,
    end: str,
    booking_id: str,
) -> None:
    """
    Block [start, end] on a listing for a booking, or fail if the dates are taken.

    Args:
        conn: Active database connection (within transaction)
        listing_id: Listing id
        listing_type: "property" or "vehicle"
        start: First blocked day, YYYY-MM-DD
        end: Last blocked day, YYYY-MM-DD
        booking_id: Booking that owns the interval

    Raises:
        DateConflictError: If an existing interval overlaps the range
    """
    lock_listing(conn, listing_id, listing_type)

    conflict = find_conflict(conn, listing_id, listing_type, start, end)
    if conflict:
        date_conflicts.labels(listing_type=listing_type).inc()
        logger.info(
            "date_conflict",
            listing_id=listing_id,
            listing_type=listing_type,
            booking_id=booking_id,
            conflicting_booking_id=conflict["booking_id"],
        )
        raise DateConflictError(conflict["booking_id"])

    conn.execute(
        insert(BlockedInterval).values(
            listing_id=listing_id,
            listing_type=listing_type,
            start=start,
            end=end,
            booking_id=booking_id,
            created_at=utc_now(),
        )
    )


def remove_blocked_interval(conn: Connection, booking_id: str) -> bool:
    """
    Remove the interval owned by a booking. Removing nothing is not an error.

    Returns:
        bool: True if a row was deleted
    """
    result = conn.execute(delete(BlockedInterval).where(BlockedInterval.booking_id == booking_id))
    return result.rowcount > 0
