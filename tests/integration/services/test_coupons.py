"""
Integration tests for coupon validation, redemption, claiming and reconciliation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest
from sqlalchemy import update
from sqlalchemy.engine import Engine

from rentaly.db.readers.coupons import get_assignment, get_coupon, get_redemption_for_booking
from rentaly.exceptions import (
    AuthorizationError,
    ConflictError,
    CouponAlreadyAppliedError,
    CouponError,
    CouponExhaustedError,
    CouponNotEligibleError,
    NotFoundError,
)
from rentaly.models.coupons import Coupon
from rentaly.services.assets import PropertyRef, VehicleRef
from rentaly.services.bookings import approve_booking, get_booking
from rentaly.services.coupons import (
    apply_coupon,
    claim_coupon,
    reconcile_coupons,
    validate_coupon,
)
from rentaly.services.state_machine import Caller

GUEST = Caller("guest-1")
OWNER = Caller("owner-1")


@pytest.mark.integration
def test_validate_percentage_coupon(
    engine: Engine, coupon_factory: Callable[..., str]
) -> None:
    coupon_factory("SAVE10", "percentage", Decimal("10"), max_discount_amount=Decimal("300"))

    preview = validate_coupon(engine, "save10", "guest-1", Decimal("4000"), "property")

    assert preview["valid"] is True
    assert preview["discount"]["discount_amount"] == Decimal("300.00")
    assert preview["discount"]["final_price"] == Decimal("3700.00")


@pytest.mark.integration
def test_validate_reports_first_failed_rule(
    engine: Engine, coupon_factory: Callable[..., str]
) -> None:
    coupon_factory("BIGSPEND", min_booking_amount=Decimal("5000"))
    coupon_factory("CARSONLY", applicable_for="vehicle")
    coupon_factory("VIP", visibility="targeted", specific_users=["guest-9"])
    coupon_factory(
        "OLD",
        valid_from=datetime.now(timezone.utc) - timedelta(days=30),
        valid_until=datetime.now(timezone.utc) - timedelta(days=1),
    )

    def reason(code: str) -> str:
        return validate_coupon(engine, code, "guest-1", Decimal("4000"), "property")["reason"]

    assert reason("BIGSPEND") == "min_amount_not_met"
    assert reason("CARSONLY") == "not_applicable"
    assert reason("VIP") == "not_eligible"
    assert reason("OLD") == "coupon_expired"
    assert reason("UNKNOWN") == "invalid_coupon"


@pytest.mark.integration
def test_validate_writes_nothing(engine: Engine, coupon_factory: Callable[..., str]) -> None:
    coupon_id = coupon_factory("PEEK", max_uses=1)

    validate_coupon(engine, "PEEK", "guest-1", Decimal("100"))
    validate_coupon(engine, "PEEK", "guest-1", Decimal("100"))

    with engine.connect() as conn:
        assert get_coupon(conn, coupon_id)["used_count"] == 0


@pytest.mark.integration
def test_apply_coupon_discounts_pending_booking(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    """Test that redemption rewrites the price, records the use and bumps usage."""
    coupon_id = coupon_factory("FLAT500", "fixed", Decimal("500"))
    booking = booking_factory("guest-1", property_listing)

    result = apply_coupon(engine, booking["id"], "flat500", GUEST)

    assert result["coupon_code"] == "FLAT500"
    assert result["discount_amount"] == Decimal("500.00")
    assert result["final_price"] == Decimal("3500.00")

    stored = get_booking(engine, booking["id"], GUEST)
    assert Decimal(stored["original_price"]) == Decimal("4000")
    assert Decimal(stored["discount_amount"]) == Decimal("500")
    assert Decimal(stored["total_price"]) == Decimal("3500")
    assert stored["coupon_id"] == coupon_id
    with engine.connect() as conn:
        assert get_coupon(conn, coupon_id)["used_count"] == 1
        assert get_redemption_for_booking(conn, booking["id"])["user_id"] == "guest-1"

    # The owner is credited the discounted total
    confirmed = approve_booking(engine, booking["id"], OWNER)
    assert Decimal(confirmed["total_price"]) == Decimal("3500")


@pytest.mark.integration
def test_create_booking_with_coupon(
    engine: Engine,
    vehicle_listing: VehicleRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("CAR20", "percentage", Decimal("20"), applicable_for="vehicle")

    booking = booking_factory(
        "guest-1", vehicle_listing, "2040-06-01", "2040-06-03", coupon_code="car20"
    )

    assert booking["coupon_code"] == "CAR20"
    assert Decimal(booking["total_price"]) == Decimal("1200")


@pytest.mark.integration
def test_failed_coupon_creates_no_booking(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("CARSONLY", applicable_for="vehicle")

    with pytest.raises(CouponError) as exc_info:
        booking_factory("guest-1", property_listing, coupon_code="CARSONLY")

    assert exc_info.value.code == "not_applicable"
    assert booking_factory("guest-1", property_listing)["status"] == "pending"


@pytest.mark.integration
def test_second_coupon_on_same_booking_is_refused(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    first_id = coupon_factory("FIRST")
    second_id = coupon_factory("SECOND")
    booking = booking_factory("guest-1", property_listing)
    apply_coupon(engine, booking["id"], "FIRST", GUEST)

    with pytest.raises(CouponAlreadyAppliedError):
        apply_coupon(engine, booking["id"], "SECOND", GUEST)

    with engine.connect() as conn:
        assert get_coupon(conn, first_id)["used_count"] == 1
        assert get_coupon(conn, second_id)["used_count"] == 0


@pytest.mark.integration
def test_per_user_limit(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("ONCE")
    first = booking_factory("guest-1", property_listing, "2040-06-01", "2040-06-02")
    second = booking_factory("guest-1", property_listing, "2040-07-01", "2040-07-02")
    apply_coupon(engine, first["id"], "ONCE", GUEST)

    with pytest.raises(CouponError) as exc_info:
        apply_coupon(engine, second["id"], "ONCE", GUEST)

    assert exc_info.value.code == "usage_limit_reached"


@pytest.mark.integration
def test_last_slot_retires_coupon(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_id = coupon_factory("SINGLE", max_uses=1)
    first = booking_factory("guest-1", property_listing)
    second = booking_factory("guest-2", property_listing)
    apply_coupon(engine, first["id"], "SINGLE", GUEST)

    with pytest.raises(CouponExhaustedError):
        apply_coupon(engine, second["id"], "SINGLE", Caller("guest-2"))

    with engine.connect() as conn:
        coupon = get_coupon(conn, coupon_id)
    assert coupon["used_count"] == 1
    assert coupon["is_active"] is False


@pytest.mark.integration
def test_apply_requires_booking_user_and_pending_status(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("LATE")
    booking = booking_factory("guest-1", property_listing)

    with pytest.raises(AuthorizationError):
        apply_coupon(engine, booking["id"], "LATE", Caller("guest-2"))
    with pytest.raises(NotFoundError):
        apply_coupon(engine, "missing", "LATE", GUEST)

    approve_booking(engine, booking["id"], OWNER)
    with pytest.raises(ConflictError) as exc_info:
        apply_coupon(engine, booking["id"], "LATE", GUEST)
    assert exc_info.value.code == "booking_not_pending"


@pytest.mark.integration
def test_claim_coupon(engine: Engine, coupon_factory: Callable[..., str]) -> None:
    coupon_id = coupon_factory("VIP", visibility="targeted", specific_users=["guest-1"])

    assert claim_coupon(engine, "vip", GUEST) == {"coupon_code": "VIP", "claimed": True}

    with pytest.raises(ConflictError) as exc_info:
        claim_coupon(engine, "VIP", GUEST)
    assert exc_info.value.code == "already_claimed"

    with pytest.raises(CouponNotEligibleError):
        claim_coupon(engine, "VIP", Caller("guest-2"))
    with pytest.raises(NotFoundError):
        claim_coupon(engine, "NOPE", GUEST)

    with engine.connect() as conn:
        assert get_assignment(conn, coupon_id, "guest-1")["used_count"] == 0


@pytest.mark.integration
def test_redemption_counts_on_claim(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_id = coupon_factory("WELCOME")
    claim_coupon(engine, "WELCOME", GUEST)
    booking = booking_factory("guest-1", property_listing)

    apply_coupon(engine, booking["id"], "WELCOME", GUEST)

    with engine.connect() as conn:
        assert get_assignment(conn, coupon_id, "guest-1")["used_count"] == 1


@pytest.mark.integration
def test_reconcile_repairs_usage_drift(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    """Test that used_count is recomputed from redemption records."""
    coupon_id = coupon_factory("DRIFT", max_uses=3)
    booking = booking_factory("guest-1", property_listing)
    apply_coupon(engine, booking["id"], "DRIFT", GUEST)
    with engine.begin() as conn:
        conn.execute(update(Coupon).where(Coupon.id == coupon_id).values(used_count=3))

    report = reconcile_coupons(engine, apply=False)
    assert report == [{"coupon_code": "DRIFT", "stored": 3, "actual": 1, "difference": -2}]
    with engine.connect() as conn:
        assert get_coupon(conn, coupon_id)["used_count"] == 3

    reconcile_coupons(engine)

    with engine.connect() as conn:
        coupon = get_coupon(conn, coupon_id)
    assert coupon["used_count"] == 1
    assert coupon["is_active"] is True
    assert reconcile_coupons(engine) == []
