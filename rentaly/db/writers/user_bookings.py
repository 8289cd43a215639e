from sqlalchemy import update
from sqlalchemy.engine import Connection

from rentaly.db.writers._upsert import dialect_insert
from rentaly.models.user_bookings import UserBooking
from rentaly.utils.datetime import utc_now


def add_user_booking(conn: Connection, user_id: str, booking_id: str) -> None:
    """Put a new booking in the user's in-progress set."""
    stmt = dialect_insert(conn, UserBooking).values(
        user_id=user_id, booking_id=booking_id, bucket="in_progress", updated_at=utc_now()
    )
    conn.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "booking_id"]))


def move_user_booking(conn: Connection, user_id: str, booking_id: str, bucket: str) -> None:
    """
    Move a booking to another of the user's sets.

    Args:
        conn: Active database connection (within transaction)
        user_id: Requesting user of the booking
        booking_id: Booking id
        bucket: "booked" or "cancelled"
    """
    conn.execute(
        update(UserBooking)
        .where(UserBooking.user_id == user_id, UserBooking.booking_id == booking_id)
        .values(bucket=bucket, updated_at=utc_now())
    )
