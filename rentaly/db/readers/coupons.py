from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from rentaly.models.coupons import Coupon, CouponAssignment, CouponRedemption


def get_coupon_by_code(conn: Connection, code: str) -> Optional[dict[str, Any]]:
    """
    Fetch a coupon by its code (case-insensitive; codes are stored upper-case).

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        code (str): Coupon code as typed by the user.

    Returns:
        Optional[dict[str, Any]]: Coupon row, or None
    """
    stmt = select(Coupon).where(Coupon.code == code.strip().upper())
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def get_coupon(conn: Connection, coupon_id: str) -> Optional[dict[str, Any]]:
    """Fetch a coupon by id."""
    row = conn.execute(select(Coupon).where(Coupon.id == coupon_id)).mappings().fetchone()
    return dict(row) if row else None


def count_user_redemptions(conn: Connection, coupon_id: str, user_id: str) -> int:
    """How many times the user has redeemed this coupon."""
    stmt = select(func.count()).where(
        CouponRedemption.coupon_id == coupon_id, CouponRedemption.user_id == user_id
    )
    return int(conn.execute(stmt).scalar_one())


def count_redemptions(conn: Connection, coupon_id: str) -> int:
    """Number of redemption records for a coupon."""
    stmt = select(func.count()).where(CouponRedemption.coupon_id == coupon_id)
    return int(conn.execute(stmt).scalar_one())


def get_redemption_for_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """Redemption attached to a booking, if any."""
    stmt = select(CouponRedemption).where(CouponRedemption.booking_id == booking_id)
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def get_assignment(conn: Connection, coupon_id: str, user_id: str) -> Optional[dict[str, Any]]:
    """The user's claim on a coupon, if any."""
    stmt = select(CouponAssignment).where(
        CouponAssignment.coupon_id == coupon_id, CouponAssignment.user_id == user_id
    )
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def list_coupon_usage(conn: Connection) -> list[dict[str, Any]]:
    """
    Every coupon with its stored used_count and its redemption record count.

    Returns:
        list[dict[str, Any]]: Rows with id, code, used_count, max_uses, is_active, redemptions
    """
    redemptions = (
        select(CouponRedemption.coupon_id, func.count().label("redemptions"))
        .group_by(CouponRedemption.coupon_id)
        .subquery()
    )
    stmt = (
        select(
            Coupon.id,
            Coupon.code,
            Coupon.used_count,
            Coupon.max_uses,
            Coupon.is_active,
            func.coalesce(redemptions.c.redemptions, 0).label("redemptions"),
        )
        .outerjoin(redemptions, redemptions.c.coupon_id == Coupon.id)
        .order_by(Coupon.code)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]
