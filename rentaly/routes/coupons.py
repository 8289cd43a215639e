from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from rentaly.dependencies import get_caller, get_db_engine, require_admin
from rentaly.exceptions import InternalError, RentalError
from rentaly.routes._encoding import render
from rentaly.schemas.coupons import CouponApplyPayload, CouponValidatePayload
from rentaly.services.coupons import (
    apply_coupon,
    claim_coupon,
    reconcile_coupons,
    validate_coupon,
)
from rentaly.services.state_machine import Caller

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/coupons/validate", status_code=status.HTTP_200_OK)
def validate_coupon_endpoint(
    payload: CouponValidatePayload,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Preview a coupon for a booking amount without redeeming it.

    An unusable coupon is not an error: the response carries valid=false and
    the failed rule as reason.
    """
    preview = validate_coupon(
        db_engine, payload.code, caller.user_id, payload.amount, payload.listing_type
    )
    return render(preview)


@router.post("/coupons/apply", status_code=status.HTTP_200_OK)
def apply_coupon_endpoint(
    payload: CouponApplyPayload,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Redeem a coupon on one of the caller's pending bookings.

    Args:
        payload: Booking id and coupon code
        caller: Authenticated caller (the booking's user)
        db_engine: SQLAlchemy Engine

    Returns:
        dict: Message and the applied discount
    """
    try:
        result = apply_coupon(db_engine, payload.booking_id, payload.code, caller)
        return render({"message": "Coupon applied successfully", **result})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("coupon_apply_failed", booking_id=payload.booking_id, error=str(e))
        raise InternalError("Internal server error")


@router.post("/coupons/{code}/claim", status_code=status.HTTP_201_CREATED)
def claim_coupon_endpoint(
    code: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    result = claim_coupon(db_engine, code, caller)
    return render({"message": "Coupon claimed", **result})


@router.post("/coupons/reconcile", status_code=status.HTTP_200_OK)
def reconcile_coupons_endpoint(
    dry_run: bool = Query(False, description="Only report drift, do not correct it"),
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Recount used_count from redemption records (admin only)."""
    require_admin(caller)
    drift = reconcile_coupons(db_engine, apply=not dry_run)
    return render({"drift": drift, "corrected": 0 if dry_run else len(drift)})
