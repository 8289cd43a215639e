"""
Integration tests for outbox delivery to the notification webhook.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable
from unittest.mock import Mock, patch

import pytest
import requests
from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from rentaly.db.writers.outbox import mark_event_sent, record_event_failure
from rentaly.models.outbox import OutboxEvent
from rentaly.services.assets import PropertyRef
from rentaly.services.notifications import dispatch_outbox, should_retry
from rentaly.utils.datetime import utc_now

WEBHOOK = "http://notifications.test/events"


def outbox_rows(engine: Engine) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(select(OutboxEvent)).mappings()]


def ok_response(status_code: int = 202) -> Mock:
    response = Mock(status_code=status_code)
    response.raise_for_status.return_value = None
    return response


@pytest.mark.unit
def test_should_retry() -> None:
    assert should_retry(Mock(status_code=429), None)
    assert should_retry(Mock(status_code=503), None)
    assert should_retry(None, requests.Timeout())
    assert should_retry(None, requests.ConnectionError())
    assert not should_retry(Mock(status_code=400), None)
    assert not should_retry(None, requests.RequestException())


@pytest.mark.integration
@patch("rentaly.services.notifications.requests.post")
def test_dispatch_sends_pending_events(
    mock_post: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    """Test that pending events are posted once and marked sent."""
    booking = booking_factory("guest-1", property_listing)
    mock_post.return_value = ok_response()

    summary = dispatch_outbox(engine, webhook_url=WEBHOOK)

    assert summary == {"sent": 1, "retry": 0, "failed": 0}
    mock_post.assert_called_once()
    kwargs = mock_post.call_args.kwargs
    assert mock_post.call_args.args[0] == WEBHOOK
    assert kwargs["headers"] == {"X-Event-Type": "booking.created"}
    assert kwargs["json"]["type"] == "booking.created"
    assert kwargs["json"]["aggregate_id"] == booking["id"]
    assert kwargs["json"]["payload"]["total_price"] == "4000.00"

    [row] = outbox_rows(engine)
    assert row["status"] == "sent"
    assert row["attempt_count"] == 1

    # Nothing left to send
    assert dispatch_outbox(engine, webhook_url=WEBHOOK) == {"sent": 0, "retry": 0, "failed": 0}


@pytest.mark.integration
@patch("rentaly.services.notifications.time.sleep")
@patch("rentaly.services.notifications.requests.post")
def test_dispatch_failure_leaves_event_pending(
    mock_post: Mock,
    mock_sleep: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    """Test that a failed delivery is recorded and never touches the booking."""
    booking = booking_factory("guest-1", property_listing)
    mock_post.side_effect = requests.ConnectionError("connection refused")

    summary = dispatch_outbox(engine, webhook_url=WEBHOOK)

    assert summary == {"sent": 0, "retry": 1, "failed": 0}
    # One attempt plus the immediate retries
    assert mock_post.call_count == 3
    [row] = outbox_rows(engine)
    assert row["status"] == "pending"
    assert row["attempt_count"] == 1
    assert "connection refused" in row["last_error"]
    assert row["aggregate_id"] == booking["id"]


@pytest.mark.integration
@patch("rentaly.services.notifications.OUTBOX_MAX_ATTEMPTS", 1)
@patch("rentaly.services.notifications.requests.post")
def test_dispatch_gives_up_after_max_attempts(
    mock_post: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    booking_factory("guest-1", property_listing)
    response = Mock(status_code=400)
    response.raise_for_status.side_effect = requests.HTTPError("400 Bad Request")
    mock_post.return_value = response

    summary = dispatch_outbox(engine, webhook_url=WEBHOOK)

    assert summary == {"sent": 0, "retry": 0, "failed": 1}
    # 4xx is not retried
    mock_post.assert_called_once()
    [row] = outbox_rows(engine)
    assert row["status"] == "failed"


@pytest.mark.integration
@patch("rentaly.services.notifications.NOTIFICATION_WEBHOOK_URL", None)
@patch("rentaly.services.notifications.requests.post")
def test_dispatch_without_webhook_is_skipped(
    mock_post: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    booking_factory("guest-1", property_listing)

    assert dispatch_outbox(engine) == {"sent": 0, "retry": 0, "failed": 0}
    mock_post.assert_not_called()
    assert outbox_rows(engine)[0]["status"] == "pending"


@pytest.mark.integration
@patch("rentaly.services.notifications.requests.post")
def test_overlapping_dispatch_runs_deliver_once(
    mock_post: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    """Test that a run started during another run's delivery skips the claimed event."""
    booking_factory("guest-1", property_listing)
    overlapping: list[dict[str, int]] = []
    statuses: list[str] = []

    def post_while_another_run_starts(*args: Any, **kwargs: Any) -> Mock:
        statuses.append(outbox_rows(engine)[0]["status"])
        overlapping.append(dispatch_outbox(engine, webhook_url=WEBHOOK))
        return ok_response()

    mock_post.side_effect = post_while_another_run_starts

    summary = dispatch_outbox(engine, webhook_url=WEBHOOK)

    assert summary == {"sent": 1, "retry": 0, "failed": 0}
    assert overlapping == [{"sent": 0, "retry": 0, "failed": 0}]
    assert statuses == ["sending"]
    mock_post.assert_called_once()
    [row] = outbox_rows(engine)
    assert row["status"] == "sent"
    assert row["attempt_count"] == 1


@pytest.mark.integration
@patch("rentaly.services.notifications.requests.post")
def test_abandoned_claim_is_picked_up_again(
    mock_post: Mock,
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
) -> None:
    booking_factory("guest-1", property_listing)
    mock_post.return_value = ok_response()

    # A dispatcher that claimed the event moments ago still owns it
    with engine.begin() as conn:
        conn.execute(update(OutboxEvent).values(status="sending", updated_at=utc_now()))
    assert dispatch_outbox(engine, webhook_url=WEBHOOK) == {"sent": 0, "retry": 0, "failed": 0}
    mock_post.assert_not_called()

    # One that stopped an hour ago does not
    with engine.begin() as conn:
        conn.execute(
            update(OutboxEvent).values(updated_at=utc_now() - timedelta(hours=1))
        )
    assert dispatch_outbox(engine, webhook_url=WEBHOOK) == {"sent": 1, "retry": 0, "failed": 0}
    assert outbox_rows(engine)[0]["status"] == "sent"


@pytest.mark.integration
def test_results_only_recorded_for_claimed_events(
    engine: Engine, property_listing: PropertyRef, booking_factory: Callable[..., dict]
) -> None:
    booking_factory("guest-1", property_listing)
    [row] = outbox_rows(engine)

    with engine.begin() as conn:
        assert mark_event_sent(conn, row["id"]) is False
        assert record_event_failure(conn, row["id"], "timeout", give_up=True) is False

    [unchanged] = outbox_rows(engine)
    assert unchanged["status"] == "pending"
    assert unchanged["attempt_count"] == 0
