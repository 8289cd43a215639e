"""
Unit tests for metrics endpoint.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from rentaly.main import app
from rentaly.metrics import (
    admission_denials,
    booking_transitions,
    coupon_redemptions,
    date_conflicts,
    transaction_duration,
)


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client."""
    return TestClient(app)


@pytest.mark.unit
def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    """Test that /metrics endpoint returns Prometheus text format."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]


@pytest.mark.unit
def test_metrics_endpoint_contains_custom_metrics(client: TestClient) -> None:
    """Test that /metrics endpoint includes the booking metrics."""
    booking_transitions.labels(from_status="pending", to_status="confirmed", outcome="success").inc()
    date_conflicts.labels(listing_type="property").inc()
    coupon_redemptions.labels(outcome="coupon_exhausted").inc()
    admission_denials.labels(reason="booking_cooldown").inc()
    transaction_duration.labels(operation="approve_booking").observe(0.02)

    content = client.get("/metrics").text

    assert "rentaly_booking_transitions_total" in content
    assert "rentaly_date_conflicts_total" in content
    assert "rentaly_coupon_redemptions_total" in content
    assert "rentaly_admission_denials_total" in content
    assert "rentaly_transaction_duration_seconds" in content


@pytest.mark.unit
def test_metrics_endpoint_includes_help_and_type_metadata(client: TestClient) -> None:
    """Test that metrics include Prometheus HELP and TYPE metadata."""
    content = client.get("/metrics").text

    assert "# HELP" in content
    assert "# TYPE" in content
    assert "counter" in content or "histogram" in content or "gauge" in content
