"""
Coupon validation, redemption, claiming and reconciliation.

A redemption is one transaction that takes a usage slot with a conditional
increment, writes the discount onto a booking that has no coupon yet, records
the redemption (unique per coupon and booking) and retires the coupon when its
last slot is taken. Any failure rolls all of it back.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from rentaly.db.readers.bookings import get_booking
from rentaly.db.readers.coupons import (
    count_redemptions,
    count_user_redemptions,
    get_coupon,
    get_coupon_by_code,
    list_coupon_usage,
)
from rentaly.db.transaction import run_in_transaction
from rentaly.db.writers.bookings import attach_coupon
from rentaly.db.writers.coupons import (
    bump_assignment_usage,
    increment_coupon_usage,
    insert_assignment,
    insert_redemption,
    retire_coupon_if_exhausted,
    set_coupon_usage,
)
from rentaly.exceptions import (
    AuthorizationError,
    ConflictError,
    CouponAlreadyAppliedError,
    CouponError,
    CouponExhaustedError,
    CouponNotEligibleError,
    NotFoundError,
    RentalError,
    ValidationError,
)
from rentaly.metrics import coupon_redemptions
from rentaly.services.state_machine import BookingStatus, Caller
from rentaly.utils.datetime import ensure_utc, utc_now

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def _booking_asset_type(booking: Mapping[str, Any]) -> str:
    return "property" if booking.get("property_id") else "vehicle"


def is_exhausted(coupon: Mapping[str, Any]) -> bool:
    return coupon["max_uses"] is not None and coupon["used_count"] >= coupon["max_uses"]


def is_user_eligible(coupon: Mapping[str, Any], user_id: str) -> bool:
    """Public coupons are open to everyone; targeted ones only to their allow-list."""
    if coupon["visibility"] != "targeted":
        return True
    return user_id in (coupon["specific_users"] or [])


def check_availability(coupon: Mapping[str, Any], now: datetime) -> Optional[CouponError]:
    """
    Rules that do not depend on the booking: exhaustion, active flag, validity window.

    Exhaustion is checked first so that a coupon retired by its last redemption
    reports coupon_exhausted rather than invalid_coupon.

    Returns:
        Optional[CouponError]: The first failed rule, or None
    """
    if is_exhausted(coupon):
        return CouponExhaustedError("Coupon has been fully redeemed")
    if not coupon["is_active"]:
        return CouponError("Invalid coupon code")
    if now < ensure_utc(coupon["valid_from"]):
        return CouponError("Coupon is not active yet")
    if now > ensure_utc(coupon["valid_until"]):
        return CouponError("Coupon has expired", code="coupon_expired")
    return None


def check_coupon_rules(
    coupon: Mapping[str, Any],
    user_id: str,
    amount: Decimal,
    asset_type: Optional[str],
    user_uses: int,
    now: datetime,
) -> Optional[CouponError]:
    """
    Evaluate every redemption rule in order and report the first failure.

    Args:
        coupon: Coupon row
        user_id: Redeeming user
        amount: Booking amount the discount applies to
        asset_type: "property" or "vehicle"; applicability is skipped when None
        user_uses: Redemptions of this coupon by the user so far
        now: Current instant (UTC)

    Returns:
        Optional[CouponError]: The first failed rule, or None when the coupon applies
    """
    error = check_availability(coupon, now)
    if error:
        return error

    minimum = Decimal(coupon["min_booking_amount"] or 0)
    if minimum and amount < minimum:
        return CouponError(
            f"Minimum booking amount {minimum} required",
            code="min_amount_not_met",
            details={"min_booking_amount": str(minimum)},
        )

    applicable = coupon["applicable_for"]
    if asset_type and applicable != "both" and applicable != asset_type:
        return CouponError(
            f"Coupon only applicable for {applicable} bookings", code="not_applicable"
        )

    if not is_user_eligible(coupon, user_id):
        return CouponNotEligibleError("You are not eligible for this coupon")

    if user_uses >= (coupon["max_uses_per_user"] or 1):
        return CouponError("You have already used this coupon", code="usage_limit_reached")

    return None


def compute_discount(coupon: Mapping[str, Any], amount: Decimal) -> Decimal:
    """
    Discount for an amount, never more than the amount itself.

    Percentage coupons take floor(amount * value / 100) in whole currency units,
    capped at max_discount_amount when set. Fixed coupons take their value.
    """
    amount = Decimal(amount)
    value = Decimal(coupon["value"])
    if coupon["discount_type"] == "percentage":
        discount = (amount * value / 100).quantize(Decimal("1"), rounding=ROUND_FLOOR)
        if coupon["max_discount_amount"] is not None:
            discount = min(discount, Decimal(coupon["max_discount_amount"]))
    else:
        discount = value
    return min(discount, amount).quantize(CENT)


def validate_coupon(
    db_engine: Engine,
    code: str,
    user_id: str,
    amount: Decimal,
    asset_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Read-only preview of what a coupon would do for a booking amount.

    Args:
        db_engine: SQLAlchemy Engine
        code: Coupon code
        user_id: Would-be redeeming user
        amount: Booking amount
        asset_type: "property" or "vehicle"
        now: Current instant (defaults to now)

    Returns:
        dict: valid, reason, message and, when valid, a discount preview
    """
    if not code or amount is None:
        raise ValidationError(
            "Coupon code and booking amount are required", code="missing_fields"
        )
    amount = Decimal(amount)
    if amount <= 0:
        raise ValidationError("Booking amount must be positive", code="invalid_amount")

    with db_engine.connect() as conn:
        coupon = get_coupon_by_code(conn, code)
        if coupon is None:
            return {"valid": False, "reason": "invalid_coupon", "message": "Invalid coupon code"}
        user_uses = count_user_redemptions(conn, coupon["id"], user_id)

    error = check_coupon_rules(coupon, user_id, amount, asset_type, user_uses, now or utc_now())
    if error:
        return {"valid": False, "reason": error.code, "message": error.message}

    discount = compute_discount(coupon, amount)
    return {
        "valid": True,
        "reason": None,
        "message": "Coupon is valid",
        "discount": {
            "type": coupon["discount_type"],
            "value": coupon["value"],
            "discount_amount": discount,
            "original_price": amount,
            "final_price": amount - discount,
        },
    }


def redeem_in_transaction(
    conn: Connection,
    code: str,
    user_id: str,
    booking: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Redeem a coupon on a pending booking inside the caller's transaction.

    Args:
        conn: Active database connection (within transaction)
        code: Coupon code
        user_id: Redeeming user (the booking's user)
        booking: Booking row as read in this transaction
        now: Current instant (defaults to now)

    Returns:
        dict: coupon_code, original_price, discount_amount, final_price

    Raises:
        CouponError: On any failed rule (exhausted, already applied, not eligible, ...)
        ConflictError: If the booking is no longer pending
    """
    now = now or utc_now()

    coupon = get_coupon_by_code(conn, code)
    if coupon is None:
        raise CouponError("Invalid coupon code")

    if booking["coupon_id"]:
        raise CouponAlreadyAppliedError("Booking already has a coupon applied")
    if booking["status"] != BookingStatus.PENDING.value:
        raise ConflictError(
            "Coupons can only be applied to pending bookings", code="booking_not_pending"
        )

    amount = Decimal(booking["total_price"])
    user_uses = count_user_redemptions(conn, coupon["id"], user_id)
    error = check_coupon_rules(
        coupon, user_id, amount, _booking_asset_type(booking), user_uses, now
    )
    if error:
        raise error

    discount = compute_discount(coupon, amount)
    final_price = amount - discount

    used_count = increment_coupon_usage(conn, coupon["id"])
    if used_count is None:
        raise CouponExhaustedError("Coupon has been fully redeemed")

    # The slot is held now; redemptions committed meanwhile are visible
    if count_user_redemptions(conn, coupon["id"], user_id) >= (coupon["max_uses_per_user"] or 1):
        raise CouponError("You have already used this coupon", code="usage_limit_reached")

    if not attach_coupon(
        conn, booking["id"], coupon["id"], coupon["code"], amount, discount, final_price
    ):
        raise CouponAlreadyAppliedError("Booking already has a coupon applied")

    try:
        insert_redemption(conn, coupon, user_id, booking["id"], amount, discount, final_price)
    except IntegrityError:
        raise CouponAlreadyAppliedError("Coupon already redeemed on this booking")

    bump_assignment_usage(conn, coupon["id"], user_id)

    if coupon["max_uses"] is not None and used_count >= coupon["max_uses"]:
        if retire_coupon_if_exhausted(conn, coupon["id"]):
            logger.info("coupon_retired", coupon_code=coupon["code"], used_count=used_count)

    return {
        "coupon_code": coupon["code"],
        "original_price": amount,
        "discount_amount": discount,
        "final_price": final_price,
    }


def apply_coupon(
    db_engine: Engine,
    booking_id: str,
    code: str,
    caller: Caller,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Apply a coupon to one of the caller's pending bookings.

    Args:
        db_engine: SQLAlchemy Engine
        booking_id: Booking id
        code: Coupon code
        caller: Authenticated caller; must be the booking's user
        now: Current instant (defaults to now)

    Returns:
        dict: coupon_code, original_price, discount_amount, final_price
    """
    if not booking_id or not code:
        raise ValidationError("Booking ID and coupon code are required", code="missing_fields")

    def work(conn: Connection) -> dict[str, Any]:
        booking = get_booking(conn, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", code="booking_not_found")
        if booking["user_id"] != caller.user_id:
            raise AuthorizationError("Only the booking's user can apply a coupon")
        return redeem_in_transaction(conn, code, caller.user_id, booking, now)

    try:
        result = run_in_transaction(db_engine, "apply_coupon", work)
    except RentalError as err:
        coupon_redemptions.labels(outcome=err.code).inc()
        raise

    coupon_redemptions.labels(outcome="success").inc()
    logger.info(
        "coupon_applied",
        booking_id=booking_id,
        coupon_code=result["coupon_code"],
        discount_amount=str(result["discount_amount"]),
    )
    return result


def claim_coupon(
    db_engine: Engine, code: str, caller: Caller, now: Optional[datetime] = None
) -> dict[str, Any]:
    """
    Record the caller's claim on a coupon.

    Returns:
        dict: coupon_code and claimed flag

    Raises:
        NotFoundError: If the code does not exist
        CouponError: If the coupon is unavailable or the caller is not eligible
        ConflictError: If the caller already claimed it
    """
    now = now or utc_now()

    def work(conn: Connection) -> dict[str, Any]:
        coupon = get_coupon_by_code(conn, code)
        if coupon is None:
            raise NotFoundError("Coupon not found", code="coupon_not_found")

        error = check_availability(coupon, now)
        if error:
            raise error
        if not is_user_eligible(coupon, caller.user_id):
            raise CouponNotEligibleError("You are not eligible for this coupon")

        try:
            insert_assignment(conn, coupon["id"], caller.user_id)
        except IntegrityError:
            raise ConflictError("Coupon already claimed", code="already_claimed")
        return {"coupon_code": coupon["code"], "claimed": True}

    result = run_in_transaction(db_engine, "claim_coupon", work)
    logger.info("coupon_claimed", coupon_code=result["coupon_code"], user_id=caller.user_id)
    return result


def reconcile_coupons(db_engine: Engine, apply: bool = True) -> list[dict[str, Any]]:
    """
    Recompute every coupon's used_count from its redemption records.

    A capped coupon whose redemptions reach max_uses is also deactivated; a
    deactivated coupon is never re-activated here.

    Args:
        db_engine: SQLAlchemy Engine
        apply: Write the corrections (False only reports them)

    Returns:
        list[dict]: One entry per drifted coupon with code, stored, actual, difference
    """
    with db_engine.connect() as conn:
        usage = list_coupon_usage(conn)

    drift = []
    for row in usage:
        actual = int(row["redemptions"])
        if actual == row["used_count"]:
            continue
        drift.append(
            {
                "coupon_code": row["code"],
                "stored": row["used_count"],
                "actual": actual,
                "difference": actual - row["used_count"],
            }
        )
        logger.warning(
            "coupon_usage_drift",
            coupon_code=row["code"],
            stored=row["used_count"],
            actual=actual,
        )
        if apply:
            is_active = bool(row["is_active"]) and not (
                row["max_uses"] is not None and actual >= row["max_uses"]
            )

            def fix(conn: Connection, coupon_id: str = row["id"], active: bool = is_active) -> None:
                # Re-count under the write transaction in case redemptions landed meanwhile
                if get_coupon(conn, coupon_id) is not None:
                    set_coupon_usage(conn, coupon_id, count_redemptions(conn, coupon_id), active)

            run_in_transaction(db_engine, "reconcile_coupon", fix)

    logger.info("coupon_reconciliation_finished", coupons=len(usage), drifted=len(drift))
    return drift

