from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from rentaly.config import ADMISSION_CONTROL_ENABLED
from rentaly.dependencies import get_caller, get_db_engine
from rentaly.exceptions import InternalError, RentalError
from rentaly.routes._encoding import render
from rentaly.schemas.bookings import BookingCreatePayload
from rentaly.services.admission import enforce_booking_admission
from rentaly.services.assets import asset_ref
from rentaly.services.bookings import (
    approve_booking,
    cancel_booking,
    check_overlap,
    complete_booking,
    create_booking,
    get_booking,
    list_user_bookings,
    record_payment,
    refund_payment,
    reject_booking,
)
from rentaly.services.state_machine import Caller

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking_endpoint(
    payload: BookingCreatePayload,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Request a booking. The booking starts pending; nothing is blocked yet.

    Args:
        payload: Listing, dates, optional client price and coupon code
        caller: Authenticated caller (the requesting user)
        db_engine: SQLAlchemy Engine

    Returns:
        dict: Message and the created booking
    """
    try:
        asset = asset_ref(payload.listing_type, payload.listing_id)

        if ADMISSION_CONTROL_ENABLED:
            enforce_booking_admission(db_engine, caller.user_id)

        booking = create_booking(
            db_engine,
            user_id=caller.user_id,
            asset=asset,
            start_date=payload.start_date,
            end_date=payload.end_date,
            total_price=payload.total_price,
            coupon_code=payload.coupon_code,
        )
        return render({"message": "Booking request created", "booking": booking})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("booking_creation_failed", error=str(e))
        raise InternalError("Internal server error")


@router.get("/bookings", status_code=status.HTTP_200_OK)
def list_bookings_endpoint(
    status_filter: Optional[str] = Query(None, alias="status", description="Only this status"),
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """List the caller's own bookings, newest first."""
    bookings = list_user_bookings(db_engine, caller, status_filter)
    return render({"bookings": bookings, "count": len(bookings)})


@router.get("/bookings/{booking_id}", status_code=status.HTTP_200_OK)
def get_booking_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return render({"booking": get_booking(db_engine, booking_id, caller)})


@router.get("/bookings/{booking_id}/overlaps", status_code=status.HTTP_200_OK)
def check_overlap_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Advisory list of other pending requests for the same dates.

    Approval re-checks authoritatively; this view may be stale.
    """
    return render(check_overlap(db_engine, booking_id, caller))


@router.post("/bookings/{booking_id}/approve", status_code=status.HTTP_200_OK)
def approve_booking_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Confirm a pending booking as the listing owner.

    Returns 409 date_conflict with the conflicting booking id when the dates
    are already taken.
    """
    try:
        booking = approve_booking(db_engine, booking_id, caller)
        return render({"message": "Booking approved", "booking": booking})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("booking_approval_failed", booking_id=booking_id, error=str(e))
        raise InternalError("Internal server error")


@router.post("/bookings/{booking_id}/reject", status_code=status.HTTP_200_OK)
def reject_booking_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    try:
        booking = reject_booking(db_engine, booking_id, caller)
        return render({"message": "Booking rejected", "booking": booking})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("booking_rejection_failed", booking_id=booking_id, error=str(e))
        raise InternalError("Internal server error")


@router.post("/bookings/{booking_id}/cancel", status_code=status.HTTP_200_OK)
def cancel_booking_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Cancel a booking as its user (or an admin).

    Returns:
        dict: Message, the cancelled booking and whether it had been confirmed
    """
    try:
        outcome = cancel_booking(db_engine, booking_id, caller)
        return render(
            {
                "message": "Booking cancelled",
                "booking": outcome.booking,
                "was_confirmed": outcome.was_confirmed,
            }
        )

    except RentalError:
        raise
    except Exception as e:
        logger.exception("booking_cancellation_failed", booking_id=booking_id, error=str(e))
        raise InternalError("Internal server error")


@router.post("/bookings/{booking_id}/complete", status_code=status.HTTP_200_OK)
def complete_booking_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    try:
        booking = complete_booking(db_engine, booking_id, caller)
        return render({"message": "Booking completed", "booking": booking})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("booking_completion_failed", booking_id=booking_id, error=str(e))
        raise InternalError("Internal server error")


@router.post("/bookings/{booking_id}/payment", status_code=status.HTTP_200_OK)
def record_payment_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Mark the booking paid; called by the payment gateway integration."""
    booking = record_payment(db_engine, booking_id, caller)
    return render({"message": "Payment recorded", "booking": booking})


@router.post("/bookings/{booking_id}/refund", status_code=status.HTTP_200_OK)
def refund_payment_endpoint(
    booking_id: str,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    booking = refund_payment(db_engine, booking_id, caller)
    return render({"message": "Payment refunded", "booking": booking})
