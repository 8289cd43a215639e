"""
Booking lifecycle service.

Every status change is planned as a ``TransitionEffects`` bundle (status write,
interval block/release, pending-balance delta, realised earnings, user bucket
move, outbox events) and applied by ``apply_effects`` inside one storage
transaction, so the bundle commits or rolls back as a whole. The transaction
is retried on transient storage failures; conflicts and state-machine
rejections are returned to the caller untouched.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from rentaly.cache import blocked_dates_cache
from rentaly.config import ALERT_RECIPIENT
from rentaly.db.readers.bookings import (
    find_overlapping_pending,
    get_booking as read_booking,
    list_bookings_for_user,
)
from rentaly.db.readers.intervals import list_intervals
from rentaly.db.transaction import run_in_transaction
from rentaly.db.writers.balances import apply_pending_delta, realize_earnings
from rentaly.db.writers.bookings import (
    insert_booking,
    update_booking_status,
    update_payment_status,
)
from rentaly.db.writers.intervals import insert_blocked_interval, remove_blocked_interval
from rentaly.db.writers.outbox import enqueue_event
from rentaly.db.writers.user_bookings import add_user_booking, move_user_booking
from rentaly.exceptions import (
    AuthorizationError,
    InvalidDateError,
    NotFoundError,
    RentalError,
    StateTransitionError,
    ValidationError,
)
from rentaly.metrics import (
    blocked_dates_cache_hits,
    blocked_dates_cache_misses,
    booking_transitions,
    bookings_created,
    coupon_redemptions,
    negative_balances,
)
from rentaly.services.assets import AssetRef, asset_ref_for_booking
from rentaly.services.coupons import redeem_in_transaction
from rentaly.services.earnings import record_realized_earnings
from rentaly.services.state_machine import (
    BOOKING_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    BookingStatus,
    Caller,
    PaymentStatus,
    RejectionReason,
)
from rentaly.utils.dates import (
    clip_range,
    expand_dates,
    normalize_date,
    ranges_overlap,
    validate_date_format,
    validate_date_range,
)
from rentaly.utils.datetime import business_today
from rentaly.utils.money import money_text

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass
class TransitionEffects:
    """Everything one booking transition changes, applied together."""

    booking: Mapping[str, Any]
    target: str
    block_interval: bool = False
    release_interval: bool = False
    pending_delta: Decimal = ZERO
    realized_amount: Decimal = ZERO
    user_bucket: Optional[str] = None
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)


@dataclass
class TransitionOutcome:
    booking: dict[str, Any]
    previous_status: str
    pending_balance: Optional[Decimal] = None

    @property
    def was_confirmed(self) -> bool:
        return self.previous_status == BookingStatus.CONFIRMED.value


def _audit_event(booking: Mapping[str, Any], target: str, caller: Caller) -> tuple[str, dict]:
    return (
        f"booking.{target}",
        {
            "booking_id": booking["id"],
            "from": booking["status"],
            "to": target,
            "actor_id": caller.user_id,
            "actor_role": caller.role,
            "user_id": booking["user_id"],
            "owner_id": booking["owner_id"],
            "total_price": money_text(booking["total_price"]),
        },
    )


def apply_effects(
    conn: Connection,
    asset: AssetRef,
    effects: TransitionEffects,
    today: Optional[date] = None,
) -> Optional[Decimal]:
    """
    Apply a transition bundle in the caller's transaction.

    The status compare-and-set runs first so that a concurrent transition of the
    same booking loses cleanly (and is retried) before any other effect.

    Args:
        conn: Active database connection (within transaction)
        asset: Asset the booking points at
        effects: Planned effects
        today: Business day used for earnings history

    Returns:
        Optional[Decimal]: Owner pending balance after the change, when it changed

    Raises:
        DateConflictError: If blocking the interval hits an existing one
        ConcurrentModificationError: If the booking's status moved meanwhile
    """
    booking = effects.booking
    update_booking_status(conn, booking["id"], booking["status"], effects.target)

    if effects.block_interval:
        insert_blocked_interval(
            conn,
            asset.id,
            asset.listing_type,
            normalize_date(booking["start_date"]),
            normalize_date(booking["end_date"]),
            booking["id"],
        )
    if effects.release_interval:
        remove_blocked_interval(conn, booking["id"])

    pending_after = None
    if effects.pending_delta:
        pending_after = apply_pending_delta(conn, booking["owner_id"], effects.pending_delta)
        pending_before = pending_after - effects.pending_delta
        if pending_after < 0 <= pending_before:
            negative_balances.inc()
            logger.warning(
                "pending_balance_negative",
                owner_id=booking["owner_id"],
                booking_id=booking["id"],
                pending_balance=money_text(pending_after),
            )
            effects.events.append(
                (
                    "balance.negative",
                    {
                        "owner_id": booking["owner_id"],
                        "booking_id": booking["id"],
                        "previous_balance": money_text(pending_before),
                        "pending_balance": money_text(pending_after),
                        "recipient": ALERT_RECIPIENT,
                    },
                )
            )

    if effects.realized_amount:
        realize_earnings(conn, booking["owner_id"], effects.realized_amount)
        record_realized_earnings(
            conn,
            booking["owner_id"],
            asset.earnings_bucket,
            effects.realized_amount,
            today or business_today(),
        )

    if effects.user_bucket:
        move_user_booking(conn, booking["user_id"], booking["id"], effects.user_bucket)

    for event_type, payload in effects.events:
        aggregate = payload.get("owner_id") if event_type.startswith("balance.") else booking["id"]
        enqueue_event(conn, event_type, aggregate, payload)

    return pending_after


def _require_booking(conn: Connection, booking_id: str) -> dict[str, Any]:
    booking = read_booking(conn, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found", code="booking_not_found")
    return booking


def _require_owner(booking: Mapping[str, Any], caller: Caller) -> None:
    if caller.is_staff:
        return
    if booking["owner_id"] != caller.user_id:
        raise AuthorizationError("Only the owner of the listing can do this")


def _run_transition(
    db_engine: Engine,
    operation: str,
    booking_id: str,
    target: str,
    plan: Callable[[Connection, dict[str, Any], AssetRef], TransitionEffects],
    today: Optional[date] = None,
) -> TransitionOutcome:
    """
    Load, plan and apply one transition in a retried transaction.

    ``plan`` authorises the caller, consults the state machine and returns the
    effects; it is re-run on every attempt against freshly read state.
    """

    def work(conn: Connection) -> TransitionOutcome:
        booking = _require_booking(conn, booking_id)
        asset = asset_ref_for_booking(booking)
        effects = plan(conn, booking, asset)
        pending_after = apply_effects(conn, asset, effects, today)
        updated = _require_booking(conn, booking_id)
        return TransitionOutcome(updated, booking["status"], pending_after)

    try:
        outcome = run_in_transaction(db_engine, operation, work)
    except StateTransitionError as err:
        booking_transitions.labels(
            from_status=err.details.get("from", "unknown"), to_status=target, outcome=err.code
        ).inc()
        raise
    except RentalError as err:
        booking_transitions.labels(from_status="unknown", to_status=target, outcome=err.code).inc()
        raise

    booking_transitions.labels(
        from_status=outcome.previous_status, to_status=target, outcome="success"
    ).inc()
    logger.info(
        "booking_transition",
        operation=operation,
        booking_id=booking_id,
        from_status=outcome.previous_status,
        to_status=target,
    )
    return outcome


def _invalidate_blocked_dates(booking: Mapping[str, Any]) -> None:
    asset = asset_ref_for_booking(booking)
    blocked_dates_cache.invalidate_listing(asset.listing_type, asset.id)


# =============================================================================
# Creation
# =============================================================================


def create_booking(
    db_engine: Engine,
    user_id: str,
    asset: AssetRef,
    start_date: str,
    end_date: str,
    total_price: Optional[Decimal] = None,
    coupon_code: Optional[str] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Create a pending booking, optionally redeeming a coupon in the same transaction.

    The listing's own rates decide the price when it has any; otherwise the
    submitted total_price is used. No balance or interval is touched.

    Args:
        db_engine: SQLAlchemy Engine
        user_id: Requesting user
        asset: Property or vehicle reference
        start_date: First day, YYYY-MM-DD
        end_date: Last day, YYYY-MM-DD
        total_price: Client-side price, used only for listings without rates
        coupon_code: Coupon to redeem on the new booking
        today: Business day used for the not-in-the-past check

    Returns:
        dict: The booking as stored

    Raises:
        ValidationError: Missing fields, malformed or past dates, bad price
        NotFoundError: Unknown or inactive listing
        CouponError: Any coupon rule failure (nothing is created)
    """
    if not user_id or not start_date or not end_date:
        raise ValidationError(
            "user_id, start_date and end_date are required", code="missing_fields"
        )
    start, end = validate_date_range(start_date, end_date)
    if start < (today or business_today()).isoformat():
        raise InvalidDateError(
            "Start date cannot be in the past",
            code="invalid_date_range",
            details={"start_date": start},
        )

    booking_id = str(uuid.uuid4())

    def work(conn: Connection) -> dict[str, Any]:
        owner_id = asset.owner_of(conn)
        if owner_id == user_id:
            raise ValidationError("You cannot book your own listing", code="own_listing")

        quote = asset.price_of(conn, start, end)
        price = quote.total_price if quote else total_price
        if price is None:
            raise ValidationError("total_price is required", code="missing_fields")
        price = Decimal(price)
        if price <= 0:
            raise ValidationError("total_price must be positive", code="invalid_amount")

        insert_booking(
            conn,
            {
                "id": booking_id,
                "user_id": user_id,
                "owner_id": owner_id,
                **asset.booking_columns(),
                "start_date": start,
                "end_date": end,
                "original_price": price,
                "discount_amount": ZERO,
                "total_price": price,
                "status": BookingStatus.PENDING.value,
                "payment_status": PaymentStatus.PENDING.value,
            },
        )
        add_user_booking(conn, user_id, booking_id)

        booking = _require_booking(conn, booking_id)
        if coupon_code:
            redeem_in_transaction(conn, coupon_code, user_id, booking)
            booking = _require_booking(conn, booking_id)

        enqueue_event(
            conn,
            "booking.created",
            booking_id,
            {
                "booking_id": booking_id,
                "user_id": user_id,
                "owner_id": owner_id,
                "listing_type": asset.listing_type,
                "listing_id": asset.id,
                "start_date": start,
                "end_date": end,
                "total_price": money_text(booking["total_price"]),
            },
        )
        return booking

    try:
        booking = run_in_transaction(db_engine, "create_booking", work)
    except RentalError as err:
        if coupon_code and err.code not in ("missing_fields", "asset_not_found", "own_listing"):
            coupon_redemptions.labels(outcome=err.code).inc()
        raise

    if coupon_code:
        coupon_redemptions.labels(outcome="success").inc()
    bookings_created.labels(
        listing_type=asset.listing_type, with_coupon=str(bool(coupon_code)).lower()
    ).inc()
    logger.info(
        "booking_created",
        booking_id=booking["id"],
        listing_type=asset.listing_type,
        listing_id=asset.id,
        total_price=money_text(booking["total_price"]),
    )
    return booking


# =============================================================================
# Transitions
# =============================================================================


def approve_booking(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """
    Confirm a pending booking (owner, admin or system).

    Blocks the dates on the listing and credits the owner's pending balance in
    the same transaction as the status write.

    Raises:
        NotFoundError: Unknown booking
        AuthorizationError: Caller does not own the listing
        StateTransitionError: Booking is not pending
        DateConflictError: Dates overlap a confirmed booking (carries its id)
    """

    def plan(conn: Connection, booking: dict[str, Any], asset: AssetRef) -> TransitionEffects:
        _require_owner(booking, caller)
        BOOKING_TRANSITIONS.require(
            booking["status"], BookingStatus.CONFIRMED.value, caller.role, booking
        )
        validate_date_range(
            normalize_date(booking["start_date"]), normalize_date(booking["end_date"])
        )
        return TransitionEffects(
            booking=booking,
            target=BookingStatus.CONFIRMED.value,
            block_interval=True,
            pending_delta=Decimal(booking["total_price"]),
            events=[_audit_event(booking, BookingStatus.CONFIRMED.value, caller)],
        )

    outcome = _run_transition(
        db_engine, "approve_booking", booking_id, BookingStatus.CONFIRMED.value, plan
    )
    _invalidate_blocked_dates(outcome.booking)
    return outcome.booking


def reject_booking(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """
    Decline a pending booking (owner or admin). Status change only.

    Raises:
        NotFoundError: Unknown booking
        AuthorizationError: Caller does not own the listing
        StateTransitionError: Booking is not pending
    """

    def plan(conn: Connection, booking: dict[str, Any], asset: AssetRef) -> TransitionEffects:
        _require_owner(booking, caller)
        BOOKING_TRANSITIONS.require(
            booking["status"], BookingStatus.CANCELLED.value, caller.role, booking
        )
        if booking["status"] != BookingStatus.PENDING.value:
            raise StateTransitionError(
                "Only pending bookings can be rejected",
                reason=RejectionReason.INVALID_TRANSITION.value,
                details={"from": booking["status"], "to": BookingStatus.CANCELLED.value},
            )
        event_type, payload = _audit_event(booking, BookingStatus.CANCELLED.value, caller)
        payload["reason"] = "rejected"
        return TransitionEffects(
            booking=booking,
            target=BookingStatus.CANCELLED.value,
            user_bucket="cancelled",
            events=[("booking.rejected", payload)],
        )

    outcome = _run_transition(
        db_engine, "reject_booking", booking_id, BookingStatus.CANCELLED.value, plan
    )
    return outcome.booking


def cancel_booking(db_engine: Engine, booking_id: str, caller: Caller) -> TransitionOutcome:
    """
    Cancel a booking as its requesting user or an admin.

    From confirmed the interval is released and the owner's pending balance is
    debited; a balance pushed below zero is reported through the outbox and
    never blocks the cancellation. From pending only the status changes.

    Returns:
        TransitionOutcome: Updated booking; ``was_confirmed`` tells which path ran

    Raises:
        NotFoundError: Unknown booking
        AuthorizationError: Caller is neither the booking's user nor an admin
        StateTransitionError: already_terminal for completed/cancelled bookings
    """

    def plan(conn: Connection, booking: dict[str, Any], asset: AssetRef) -> TransitionEffects:
        if booking["user_id"] != caller.user_id and caller.role != "admin":
            raise AuthorizationError("Only the booking's user can cancel it")
        if BOOKING_TRANSITIONS.is_terminal(booking["status"]):
            raise StateTransitionError(
                f"Booking is already {booking['status']}",
                reason=RejectionReason.INVALID_TRANSITION.value,
                code="already_terminal",
                details={"from": booking["status"], "to": BookingStatus.CANCELLED.value},
            )
        BOOKING_TRANSITIONS.require(
            booking["status"], BookingStatus.CANCELLED.value, caller.role, booking
        )

        was_confirmed = booking["status"] == BookingStatus.CONFIRMED.value
        return TransitionEffects(
            booking=booking,
            target=BookingStatus.CANCELLED.value,
            release_interval=was_confirmed,
            pending_delta=-Decimal(booking["total_price"]) if was_confirmed else ZERO,
            user_bucket="cancelled",
            events=[_audit_event(booking, BookingStatus.CANCELLED.value, caller)],
        )

    outcome = _run_transition(
        db_engine, "cancel_booking", booking_id, BookingStatus.CANCELLED.value, plan
    )
    if outcome.was_confirmed:
        _invalidate_blocked_dates(outcome.booking)
    return outcome


def complete_booking(
    db_engine: Engine, booking_id: str, caller: Caller, today: Optional[date] = None
) -> dict[str, Any]:
    """
    Complete a confirmed, paid booking (system or admin).

    The booking total moves from the owner's pending balance to available
    balance and total earnings, and is booked into the earnings history. The
    blocked interval is kept: the dates were used.

    Raises:
        StateTransitionError: invalid_transition, unauthorized_role or payment_not_confirmed
    """

    def plan(conn: Connection, booking: dict[str, Any], asset: AssetRef) -> TransitionEffects:
        BOOKING_TRANSITIONS.require(
            booking["status"], BookingStatus.COMPLETED.value, caller.role, booking
        )
        return TransitionEffects(
            booking=booking,
            target=BookingStatus.COMPLETED.value,
            realized_amount=Decimal(booking["total_price"]),
            user_bucket="booked",
            events=[_audit_event(booking, BookingStatus.COMPLETED.value, caller)],
        )

    outcome = _run_transition(
        db_engine, "complete_booking", booking_id, BookingStatus.COMPLETED.value, plan, today
    )
    return outcome.booking


def _change_payment(
    db_engine: Engine, booking_id: str, caller: Caller, target: str, operation: str
) -> dict[str, Any]:
    def work(conn: Connection) -> dict[str, Any]:
        booking = _require_booking(conn, booking_id)
        PAYMENT_TRANSITIONS.require(booking["payment_status"], target, caller.role, booking)
        update_payment_status(conn, booking_id, booking["payment_status"], target)
        enqueue_event(
            conn,
            f"payment.{target}",
            booking_id,
            {
                "booking_id": booking_id,
                "from": booking["payment_status"],
                "to": target,
                "actor_id": caller.user_id,
                "amount": money_text(booking["total_price"]),
            },
        )
        return _require_booking(conn, booking_id)

    booking = run_in_transaction(db_engine, operation, work)
    logger.info("payment_status_changed", booking_id=booking_id, payment_status=target)
    return booking


def record_payment(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """Mark an open booking as paid (system or admin, reported by the payment gateway)."""
    return _change_payment(
        db_engine, booking_id, caller, PaymentStatus.PAID.value, "record_payment"
    )


def refund_payment(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """Mark a cancelled booking's payment as refunded (system or admin)."""
    return _change_payment(
        db_engine, booking_id, caller, PaymentStatus.REFUNDED.value, "refund_payment"
    )


# =============================================================================
# Queries
# =============================================================================


def get_booking(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """
    Fetch a booking visible to the caller (its user, the listing owner or staff).

    Raises:
        NotFoundError: Unknown booking
        AuthorizationError: Caller is not a party to the booking
    """
    with db_engine.connect() as conn:
        booking = _require_booking(conn, booking_id)
    if not caller.is_staff and caller.user_id not in (booking["user_id"], booking["owner_id"]):
        raise AuthorizationError("Not authorized to view this booking")
    return booking


def list_user_bookings(
    db_engine: Engine, caller: Caller, status: Optional[str] = None
) -> list[dict[str, Any]]:
    """The caller's own bookings, newest first, optionally filtered by status."""
    if status and status not in {s.value for s in BookingStatus}:
        raise ValidationError(f"Unknown status {status!r}")
    with db_engine.connect() as conn:
        return list_bookings_for_user(conn, caller.user_id, status)


def check_overlap(db_engine: Engine, booking_id: str, caller: Caller) -> dict[str, Any]:
    """
    Other pending bookings on the same asset whose dates overlap this one.

    Advisory only: nothing is locked, so the answer may be stale by the time the
    owner acts. Approval re-checks authoritatively.

    Returns:
        dict: has_overlap, overlapping_count, overlapping_bookings
    """
    with db_engine.connect() as conn:
        booking = _require_booking(conn, booking_id)
        _require_owner(booking, caller)
        asset = asset_ref_for_booking(booking)
        start = normalize_date(booking["start_date"])
        end = normalize_date(booking["end_date"])
        overlapping = find_overlapping_pending(
            conn, asset.asset_column, asset.id, start, end, booking_id
        )

    matches = [
        {
            "id": other["id"],
            "start_date": normalize_date(other["start_date"]),
            "end_date": normalize_date(other["end_date"]),
        }
        for other in overlapping
        if ranges_overlap(start, end, other["start_date"], other["end_date"])
    ]
    return {
        "has_overlap": bool(matches),
        "overlapping_count": len(matches),
        "overlapping_bookings": matches,
    }


def list_blocked_dates(
    db_engine: Engine,
    asset: AssetRef,
    range_from: Optional[str] = None,
    range_to: Optional[str] = None,
) -> dict[str, Any]:
    """
    Blocked intervals of a listing and every day they cover.

    With a window, only intervals touching it are returned and the expanded
    dates are clipped to it. Results are cached for a few seconds.

    Returns:
        dict: blocked_ranges (start, end, booking_id) and blocked_dates
    """
    if range_from:
        validate_date_format(range_from, "from")
    if range_to:
        validate_date_format(range_to, "to")
    if range_from and range_to and range_from > range_to:
        raise ValidationError("from must be on or before to", code="invalid_date_range")

    key = (asset.listing_type, asset.id, range_from, range_to)
    cached = blocked_dates_cache.get(key)
    if cached is not None:
        blocked_dates_cache_hits.inc()
        return cached
    blocked_dates_cache_misses.inc()

    with db_engine.connect() as conn:
        intervals = list_intervals(conn, asset.id, asset.listing_type, range_from, range_to)

    dates: list[str] = []
    for interval in intervals:
        clipped = clip_range(interval["start"], interval["end"], range_from, range_to)
        if clipped:
            dates.extend(expand_dates(*clipped))

    result = {
        "blocked_ranges": [
            {"start": i["start"], "end": i["end"], "booking_id": i["booking_id"]}
            for i in intervals
        ],
        "blocked_dates": sorted(set(dates)),
    }
    blocked_dates_cache.set(key, result)
    return result
