"""
Outbox delivery to the notification webhook.

State changes enqueue events in the same transaction as the change itself.
This module hands pending events to the notification service after commit.
Delivery failures are logged and recorded on the event row; they never reach
the booking that produced the event.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Optional

import requests
import structlog
from sqlalchemy.engine import Connection, Engine

from rentaly.config import (
    NOTIFICATION_WEBHOOK_URL,
    OUTBOX_BATCH_SIZE,
    OUTBOX_CLAIM_TIMEOUT_SECONDS,
    OUTBOX_MAX_ATTEMPTS,
)
from rentaly.db.readers.outbox import fetch_claimable_events
from rentaly.db.transaction import run_in_transaction
from rentaly.db.writers.outbox import claim_event, mark_event_sent, record_event_failure
from rentaly.metrics import outbox_dispatched
from rentaly.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT = 5
MAX_RETRIES = 2
RETRY_DELAY = 0.5


def should_retry(res: Optional[requests.Response], err: Optional[Exception]) -> bool:
    """
    Determine whether a delivery should be retried right away.

    Args:
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True for rate limiting, timeouts, connection errors and 5xx responses.
    """
    if res is not None and res.status_code == 429:
        return True
    if isinstance(err, (requests.Timeout, requests.ConnectionError)):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def event_body(event: dict[str, Any]) -> dict[str, Any]:
    """JSON body posted for one outbox event."""
    created_at = event.get("created_at")
    return {
        "id": event["id"],
        "type": event["event_type"],
        "aggregate_id": event["aggregate_id"],
        "created_at": created_at.isoformat() if created_at is not None else None,
        "payload": event["payload"],
    }


def deliver_event(url: str, event: dict[str, Any]) -> int:
    """
    POST one event to the webhook.

    Args:
        url (str): Notification webhook URL.
        event (dict[str, Any]): Outbox event row.

    Returns:
        int: HTTP status code of the accepted delivery.

    Raises:
        requests.RequestException: If the delivery fails after all retries.
    """
    retries = 0

    while True:
        res: Optional[requests.Response] = None
        try:
            res = requests.post(
                url,
                json=event_body(event),
                headers={"X-Event-Type": event["event_type"]},
                timeout=REQUEST_TIMEOUT,
            )
            res.raise_for_status()
            return res.status_code

        except requests.RequestException as err:
            retries += 1
            if retries > MAX_RETRIES or not should_retry(res, err):
                raise
            logger.warning(
                "outbox_delivery_retry",
                event_id=event["id"],
                event_type=event["event_type"],
                attempt=retries,
                error=str(err),
            )
            time.sleep(RETRY_DELAY * retries)


def claim_events(db_engine: Engine, batch_size: int) -> list[dict[str, Any]]:
    """
    Claim up to batch_size deliverable events for this dispatcher run.

    Claimed events are in ``sending``; a concurrent run sees them as taken
    until OUTBOX_CLAIM_TIMEOUT_SECONDS have passed without a result.
    """
    stale_before = utc_now() - timedelta(seconds=OUTBOX_CLAIM_TIMEOUT_SECONDS)

    def work(conn: Connection) -> list[dict[str, Any]]:
        return [
            event
            for event in fetch_claimable_events(conn, batch_size, stale_before)
            if claim_event(conn, event["id"], stale_before)
        ]

    return run_in_transaction(db_engine, "claim_outbox_events", work)


def dispatch_outbox(
    db_engine: Engine,
    batch_size: int = OUTBOX_BATCH_SIZE,
    webhook_url: Optional[str] = None,
) -> dict[str, int]:
    """
    Deliver one batch of pending outbox events.

    Events are claimed before delivery so that overlapping runs never post
    the same event twice.

    Args:
        db_engine: SQLAlchemy Engine
        batch_size: Maximum events handled in this run
        webhook_url: Override of NOTIFICATION_WEBHOOK_URL

    Returns:
        dict: Counts of sent, retry (left pending) and failed (given up) events
    """
    url = webhook_url or NOTIFICATION_WEBHOOK_URL
    summary = {"sent": 0, "retry": 0, "failed": 0}

    if not url:
        logger.info("outbox_dispatch_skipped", reason="no_webhook_url")
        return summary

    for event in claim_events(db_engine, batch_size):
        try:
            deliver_event(url, event)
        except requests.RequestException as err:
            give_up = event["attempt_count"] + 1 >= OUTBOX_MAX_ATTEMPTS
            outcome = "failed" if give_up else "retry"
            with db_engine.begin() as conn:
                recorded = record_event_failure(conn, event["id"], str(err), give_up)
            logger.warning(
                "outbox_delivery_failed",
                event_id=event["id"],
                event_type=event["event_type"],
                attempt=event["attempt_count"] + 1,
                gave_up=give_up,
                error=str(err),
            )
        else:
            outcome = "sent"
            with db_engine.begin() as conn:
                recorded = mark_event_sent(conn, event["id"])

        if not recorded:
            logger.warning("outbox_claim_lost", event_id=event["id"], outcome=outcome)

        summary[outcome] += 1
        outbox_dispatched.labels(event_type=event["event_type"], status=outcome).inc()

    logger.info("outbox_dispatched", **summary)
    return summary
