from decimal import Decimal
from typing import Any

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from rentaly.exceptions import ConcurrentModificationError
from rentaly.models.bookings import Booking
from rentaly.utils.datetime import utc_now


def insert_booking(conn: Connection, row: dict[str, Any]) -> None:
    """
    Insert a new booking row.

    Args:
        conn: Active database connection (within transaction)
        row: Column values; created_at/updated_at are filled in when absent
    """
    now = utc_now()
    values = {"created_at": now, "updated_at": now, **row}
    conn.execute(insert(Booking).values(**values))


def update_booking_status(
    conn: Connection, booking_id: str, expected_status: str, new_status: str
) -> None:
    """
    Compare-and-set the booking status.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Booking id
        expected_status: Status the caller validated the transition against
        new_status: Target status

    Raises:
        ConcurrentModificationError: If the booking is no longer in expected_status
    """
    result = conn.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == expected_status)
        .values(status=new_status, updated_at=utc_now())
    )
    if result.rowcount != 1:
        raise ConcurrentModificationError(
            f"booking {booking_id} left status {expected_status} concurrently"
        )


def update_payment_status(
    conn: Connection, booking_id: str, expected_status: str, new_status: str
) -> None:
    """
    Compare-and-set the payment status.

    Raises:
        ConcurrentModificationError: If payment_status changed concurrently
    """
    result = conn.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.payment_status == expected_status)
        .values(payment_status=new_status, updated_at=utc_now())
    )
    if result.rowcount != 1:
        raise ConcurrentModificationError(
            f"booking {booking_id} payment left {expected_status} concurrently"
        )


def attach_coupon(
    conn: Connection,
    booking_id: str,
    coupon_id: str,
    coupon_code: str,
    original_price: Decimal,
    discount_amount: Decimal,
    total_price: Decimal,
) -> bool:
    """
    Write a coupon discount onto a pending booking that has no coupon yet.

    Returns:
        bool: False if the booking already carries a coupon or is no longer pending
    """
    result = conn.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.coupon_id.is_(None),
            Booking.status == "pending",
        )
        .values(
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            original_price=original_price,
            discount_amount=discount_amount,
            total_price=total_price,
            updated_at=utc_now(),
        )
    )
    return result.rowcount == 1

