"""
Integration tests for the /coupons endpoints.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from rentaly.services.assets import PropertyRef

GUEST = {"X-User-Id": "guest-1"}
ADMIN = {"X-User-Id": "ops", "X-User-Role": "admin"}


@pytest.mark.integration
def test_validate_coupon(api_client: TestClient, coupon_factory: Callable[..., str]) -> None:
    coupon_factory("SAVE10")

    response = api_client.post(
        "/coupons/validate",
        headers=GUEST,
        json={"code": "save10", "amount": "999.99", "listing_type": "property"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["discount"]["discount_amount"] == "99.00"


@pytest.mark.integration
def test_validate_unusable_coupon_is_not_an_error(
    api_client: TestClient, coupon_factory: Callable[..., str]
) -> None:
    coupon_factory("BIG", min_booking_amount=Decimal("5000"))

    response = api_client.post(
        "/coupons/validate", headers=GUEST, json={"code": "BIG", "amount": 100}
    )

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["reason"] == "min_amount_not_met"


@pytest.mark.integration
def test_validate_rejects_non_positive_amount(api_client: TestClient) -> None:
    response = api_client.post(
        "/coupons/validate", headers=GUEST, json={"code": "SAVE10", "amount": 0}
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_failed"


@pytest.mark.integration
def test_apply_coupon(
    api_client: TestClient,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("FLAT", "fixed", Decimal("250"))
    booking = booking_factory("guest-1", property_listing)

    response = api_client.post(
        "/coupons/apply", headers=GUEST, json={"booking_id": booking["id"], "code": "FLAT"}
    )
    again = api_client.post(
        "/coupons/apply", headers=GUEST, json={"booking_id": booking["id"], "code": "FLAT"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Coupon applied successfully"
    assert data["coupon_code"] == "FLAT"
    assert data["final_price"] == "3750.00"
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "already_applied"


@pytest.mark.integration
def test_apply_exhausted_coupon(
    api_client: TestClient,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    coupon_factory("ONE", max_uses=1)
    first = booking_factory("guest-1", property_listing)
    second = booking_factory("guest-2", property_listing)
    api_client.post(
        "/coupons/apply", headers=GUEST, json={"booking_id": first["id"], "code": "ONE"}
    )

    response = api_client.post(
        "/coupons/apply",
        headers={"X-User-Id": "guest-2"},
        json={"booking_id": second["id"], "code": "ONE"},
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "coupon_exhausted"


@pytest.mark.integration
def test_claim_coupon(api_client: TestClient, coupon_factory: Callable[..., str]) -> None:
    coupon_factory("WELCOME")

    first = api_client.post("/coupons/welcome/claim", headers=GUEST)
    second = api_client.post("/coupons/welcome/claim", headers=GUEST)

    assert first.status_code == 201
    assert first.json() == {"message": "Coupon claimed", "coupon_code": "WELCOME", "claimed": True}
    assert second.status_code == 409


@pytest.mark.integration
def test_reconcile_is_admin_only(api_client: TestClient) -> None:
    assert api_client.post("/coupons/reconcile", headers=GUEST).status_code == 403

    response = api_client.post("/coupons/reconcile", headers=ADMIN, params={"dry_run": True})

    assert response.status_code == 200
    assert response.json() == {"drift": [], "corrected": 0}
