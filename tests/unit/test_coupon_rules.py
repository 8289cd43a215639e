"""
Unit tests for coupon rule evaluation and discount computation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from rentaly.exceptions import CouponExhaustedError, CouponNotEligibleError
from rentaly.services.coupons import check_coupon_rules, compute_discount

NOW = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_coupon(**overrides: Any) -> dict[str, Any]:
    coupon = {
        "id": "c1",
        "code": "SAVE10",
        "discount_type": "percentage",
        "value": Decimal("10"),
        "max_discount_amount": None,
        "min_booking_amount": Decimal("0"),
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=30),
        "is_active": True,
        "max_uses": None,
        "used_count": 0,
        "max_uses_per_user": 1,
        "applicable_for": "both",
        "visibility": "public",
        "specific_users": [],
    }
    coupon.update(overrides)
    return coupon


def rule(coupon: dict[str, Any], amount: str = "1000", asset: str = "property", uses: int = 0):
    return check_coupon_rules(coupon, "user-1", Decimal(amount), asset, uses, NOW)


@pytest.mark.unit
def test_valid_coupon_passes() -> None:
    assert rule(make_coupon()) is None


@pytest.mark.unit
def test_exhausted_coupon_reported_before_inactive() -> None:
    """Test that a retired coupon reports exhaustion rather than invalid_coupon."""
    error = rule(make_coupon(max_uses=5, used_count=5, is_active=False))

    assert isinstance(error, CouponExhaustedError)
    assert error.code == "coupon_exhausted"
    assert error.status_code == 409


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"is_active": False}, "invalid_coupon"),
        ({"valid_from": NOW + timedelta(hours=1)}, "invalid_coupon"),
        ({"valid_until": NOW - timedelta(seconds=1)}, "coupon_expired"),
        ({"min_booking_amount": Decimal("5000")}, "min_amount_not_met"),
        ({"applicable_for": "vehicle"}, "not_applicable"),
    ],
)
def test_rule_failures(overrides: dict[str, Any], code: str) -> None:
    error = rule(make_coupon(**overrides))

    assert error is not None
    assert error.code == code


@pytest.mark.unit
def test_naive_validity_window_read_as_utc() -> None:
    coupon = make_coupon(valid_until=(NOW - timedelta(minutes=1)).replace(tzinfo=None))

    assert rule(coupon).code == "coupon_expired"  # type: ignore[union-attr]


@pytest.mark.unit
def test_applicability_skipped_without_asset_type() -> None:
    assert rule(make_coupon(applicable_for="vehicle"), asset=None) is None  # type: ignore[arg-type]


@pytest.mark.unit
def test_targeted_coupon_requires_allow_list() -> None:
    coupon = make_coupon(visibility="targeted", specific_users=["someone-else"])

    error = rule(coupon)

    assert isinstance(error, CouponNotEligibleError)
    assert error.status_code == 403
    assert rule(make_coupon(visibility="targeted", specific_users=["user-1"])) is None


@pytest.mark.unit
def test_per_user_limit() -> None:
    assert rule(make_coupon(), uses=1).code == "usage_limit_reached"  # type: ignore[union-attr]
    assert rule(make_coupon(max_uses_per_user=3), uses=2) is None


@pytest.mark.unit
def test_percentage_discount_is_floored() -> None:
    coupon = make_coupon(value=Decimal("15"))

    assert compute_discount(coupon, Decimal("999.99")) == Decimal("149.00")


@pytest.mark.unit
def test_percentage_discount_capped() -> None:
    coupon = make_coupon(value=Decimal("50"), max_discount_amount=Decimal("200"))

    assert compute_discount(coupon, Decimal("1000")) == Decimal("200.00")


@pytest.mark.unit
def test_fixed_discount_never_exceeds_amount() -> None:
    coupon = make_coupon(discount_type="fixed", value=Decimal("300"))

    assert compute_discount(coupon, Decimal("1000")) == Decimal("300.00")
    assert compute_discount(coupon, Decimal("120.50")) == Decimal("120.50")
