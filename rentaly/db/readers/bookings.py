from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, desc, func, select
from sqlalchemy.engine import Connection

from rentaly.models.bookings import Booking

ACTIVE_STATUSES = ("pending", "confirmed")


def get_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch one booking by id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        booking_id (str): Booking id.

    Returns:
        Optional[dict[str, Any]]: Booking row as a dict, or None if not found
    """
    row = conn.execute(select(Booking).where(Booking.id == booking_id)).mappings().fetchone()
    return dict(row) if row else None


def list_bookings_for_user(
    conn: Connection, user_id: str, status: Optional[str] = None, limit: int = 100
) -> list[dict[str, Any]]:
    """
    List a user's bookings, newest first.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        user_id (str): Requesting user.
        status (Optional[str]): Only bookings in this status.
        limit (int): Maximum rows returned.

    Returns:
        list[dict[str, Any]]: Booking rows
    """
    stmt = select(Booking).where(Booking.user_id == user_id)
    if status:
        stmt = stmt.where(Booking.status == status)
    stmt = stmt.order_by(desc(Booking.created_at)).limit(limit)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def find_overlapping_pending(
    conn: Connection,
    asset_column: str,
    asset_id: str,
    start: str,
    end: str,
    exclude_booking_id: str,
) -> list[dict[str, Any]]:
    """
    Other pending bookings on the same asset whose ranges overlap [start, end].

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        asset_column (str): "property_id" or "vehicle_id".
        asset_id (str): Listing id.
        start (str): Range start, YYYY-MM-DD.
        end (str): Range end, YYYY-MM-DD.
        exclude_booking_id (str): Booking the check is made for.

    Returns:
        list[dict[str, Any]]: Overlapping bookings ordered by start date
    """
    column = getattr(Booking, asset_column)
    stmt = (
        select(Booking)
        .where(
            and_(
                column == asset_id,
                Booking.id != exclude_booking_id,
                Booking.status == "pending",
                Booking.start_date <= end,
                Booking.end_date >= start,
            )
        )
        .order_by(Booking.start_date)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def count_active_bookings(conn: Connection, user_id: str) -> int:
    """Number of the user's bookings that are pending or confirmed."""
    stmt = select(func.count()).where(
        Booking.user_id == user_id, Booking.status.in_(ACTIVE_STATUSES)
    )
    return int(conn.execute(stmt).scalar_one())


def count_cancellations_since(conn: Connection, user_id: str, since: datetime) -> int:
    """Number of cancelled bookings among those the user created since the given instant."""
    stmt = select(func.count()).where(
        Booking.user_id == user_id,
        Booking.status == "cancelled",
        Booking.created_at >= since,
    )
    return int(conn.execute(stmt).scalar_one())


def recent_booking_statuses(conn: Connection, user_id: str, limit: int) -> list[str]:
    """Statuses of the user's most recently created bookings, newest first."""
    stmt = (
        select(Booking.status)
        .where(Booking.user_id == user_id)
        .order_by(desc(Booking.created_at))
        .limit(limit)
    )
    return list(conn.execute(stmt).scalars())


def last_booking_created_at(conn: Connection, user_id: str) -> Optional[datetime]:
    """Creation time of the user's newest booking, if any."""
    stmt = select(func.max(Booking.created_at)).where(Booking.user_id == user_id)
    return conn.execute(stmt).scalar_one_or_none()


def booking_status_counts(conn: Connection, user_id: str) -> dict[str, int]:
    """Booking count per status for one user."""
    stmt = (
        select(Booking.status, func.count())
        .where(Booking.user_id == user_id)
        .group_by(Booking.status)
    )
    return {status: int(count) for status, count in conn.execute(stmt)}


def confirmed_totals_by_owner(conn: Connection) -> dict[str, Any]:
    """Sum of total_price of confirmed bookings, per owner."""
    stmt = (
        select(Booking.owner_id, func.sum(Booking.total_price))
        .where(Booking.status == "confirmed")
        .group_by(Booking.owner_id)
    )
    return {owner_id: total for owner_id, total in conn.execute(stmt)}
