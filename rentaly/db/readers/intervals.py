from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from rentaly.models.blocked_intervals import BlockedInterval


def find_conflict(
    conn: Connection, listing_id: str, listing_type: str, start: str, end: str
) -> Optional[dict[str, Any]]:
    """
    First blocked interval of the listing that overlaps [start, end].

    Overlap is inclusive on both ends, so an interval ending on ``start``
    is a conflict.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        listing_id (str): Listing id.
        listing_type (str): "property" or "vehicle".
        start (str): Candidate start, YYYY-MM-DD.
        end (str): Candidate end, YYYY-MM-DD.

    Returns:
        Optional[dict[str, Any]]: The conflicting interval, or None
    """
    stmt = (
        select(BlockedInterval)
        .where(
            BlockedInterval.listing_id == listing_id,
            BlockedInterval.listing_type == listing_type,
            BlockedInterval.start <= end,
            BlockedInterval.end >= start,
        )
        .order_by(BlockedInterval.start)
        .limit(1)
    )
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def list_intervals(
    conn: Connection,
    listing_id: str,
    listing_type: str,
    range_from: Optional[str] = None,
    range_to: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Blocked intervals of a listing, optionally limited to those touching a window.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        listing_id (str): Listing id.
        listing_type (str): "property" or "vehicle".
        range_from (Optional[str]): Window start, YYYY-MM-DD.
        range_to (Optional[str]): Window end, YYYY-MM-DD.

    Returns:
        list[dict[str, Any]]: Intervals ordered by start date
    """
    stmt = select(BlockedInterval).where(
        BlockedInterval.listing_id == listing_id,
        BlockedInterval.listing_type == listing_type,
    )
    if range_from:
        stmt = stmt.where(BlockedInterval.end >= range_from)
    if range_to:
        stmt = stmt.where(BlockedInterval.start <= range_to)
    stmt = stmt.order_by(BlockedInterval.start)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def get_interval_for_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """Blocked interval created by the given booking, if it still exists."""
    stmt = select(BlockedInterval).where(BlockedInterval.booking_id == booking_id)
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None
