"""
Coupon usage writes.

``used_count`` is never read-compared-written from Python: the increment is a
single conditional UPDATE and its rowcount tells the caller whether a slot was
still free.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import insert, or_, update
from sqlalchemy.engine import Connection

from rentaly.models.coupons import Coupon, CouponAssignment, CouponRedemption
from rentaly.utils.datetime import utc_now


def increment_coupon_usage(conn: Connection, coupon_id: str) -> Optional[int]:
    """
    Take one usage slot if the coupon still has one.

    Args:
        conn: Active database connection (within transaction)
        coupon_id: Coupon id

    Returns:
        Optional[int]: used_count after the increment, or None if no slot was left
    """
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.is_active.is_(True),
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
        )
        .values(used_count=Coupon.used_count + 1, updated_at=utc_now())
        .returning(Coupon.used_count)
    )
    row = conn.execute(stmt).fetchone()
    return int(row[0]) if row else None


def retire_coupon_if_exhausted(conn: Connection, coupon_id: str) -> bool:
    """
    Deactivate a capped coupon whose used_count has reached max_uses.

    Returns:
        bool: True if the coupon was deactivated by this call
    """
    result = conn.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.is_active.is_(True),
            Coupon.max_uses.is_not(None),
            Coupon.used_count >= Coupon.max_uses,
        )
        .values(is_active=False, updated_at=utc_now())
    )
    return result.rowcount > 0


def insert_redemption(
    conn: Connection,
    coupon: dict[str, Any],
    user_id: str,
    booking_id: str,
    original_price: Decimal,
    discount_amount: Decimal,
    final_price: Decimal,
) -> None:
    """
    Record a redemption. The (coupon_id, booking_id) unique constraint rejects duplicates.

    Raises:
        sqlalchemy.exc.IntegrityError: If this coupon was already redeemed on the booking
    """
    conn.execute(
        insert(CouponRedemption).values(
            coupon_id=coupon["id"],
            coupon_code=coupon["code"],
            user_id=user_id,
            booking_id=booking_id,
            original_price=original_price,
            discount_amount=discount_amount,
            final_price=final_price,
            used_at=utc_now(),
        )
    )


def bump_assignment_usage(conn: Connection, coupon_id: str, user_id: str) -> None:
    """Count one use on the user's claim of the coupon, if they claimed it."""
    now = utc_now()
    conn.execute(
        update(CouponAssignment)
        .where(CouponAssignment.coupon_id == coupon_id, CouponAssignment.user_id == user_id)
        .values(used_count=CouponAssignment.used_count + 1, last_used_at=now)
    )


def insert_assignment(conn: Connection, coupon_id: str, user_id: str) -> None:
    """
    Record a user's claim on a coupon.

    Raises:
        sqlalchemy.exc.IntegrityError: If the user already claimed it
    """
    conn.execute(
        insert(CouponAssignment).values(
            coupon_id=coupon_id, user_id=user_id, used_count=0, assigned_at=utc_now()
        )
    )


def set_coupon_usage(conn: Connection, coupon_id: str, used_count: int, is_active: bool) -> None:
    """Overwrite used_count and the active flag. Reconciliation tooling only."""
    conn.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .values(used_count=used_count, is_active=is_active, updated_at=utc_now())
    )


def insert_coupon(
    conn: Connection,
    coupon_id: str,
    code: str,
    discount_type: str,
    value: Decimal,
    valid_from: datetime,
    valid_until: datetime,
    **options: Any,
) -> None:
    """
    Create a coupon. Codes are stored upper-case.

    Args:
        conn: Active database connection (within transaction)
        coupon_id: Coupon id
        code: Coupon code
        discount_type: "percentage" or "fixed"
        value: Percent or fixed amount
        valid_from: Start of the validity window
        valid_until: End of the validity window
        **options: Any other Coupon column (max_uses, visibility, ...)
    """
    now = utc_now()
    values = {
        "id": coupon_id,
        "code": code.strip().upper(),
        "discount_type": discount_type,
        "value": value,
        "valid_from": valid_from,
        "valid_until": valid_until,
        "is_active": True,
        "used_count": 0,
        "max_uses_per_user": 1,
        "min_booking_amount": Decimal("0"),
        "applicable_for": "both",
        "visibility": "public",
        "specific_users": [],
        "created_at": now,
        "updated_at": now,
    }
    values.update(options)
    conn.execute(insert(Coupon).values(**values))
