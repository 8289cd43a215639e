import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, insert, or_, update
from sqlalchemy.engine import Connection

from rentaly.models.outbox import OutboxEvent
from rentaly.utils.datetime import utc_now


def enqueue_event(
    conn: Connection, event_type: str, aggregate_id: str, payload: dict[str, Any]
) -> str:
    """
    Record a side effect to be delivered after the transaction commits.

    Args:
        conn: Active database connection (the transaction of the state change)
        event_type: Event name, e.g. "booking.confirmed" or "balance.negative"
        aggregate_id: Booking or owner id the event is about
        payload: JSON-serialisable body

    Returns:
        str: Event id
    """
    event_id = str(uuid.uuid4())
    now = utc_now()
    conn.execute(
        insert(OutboxEvent).values(
            id=event_id,
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status="pending",
            attempt_count=0,
            created_at=now,
            updated_at=now,
        )
    )
    return event_id


def claim_event(conn: Connection, event_id: str, stale_before: datetime) -> bool:
    """
    Move one event to ``sending`` for the current dispatcher.

    The update only matches while the event is still pending, or still in an
    abandoned claim, so two dispatchers can never both claim it.

    Returns:
        bool: True if this call claimed the event
    """
    result = conn.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.id == event_id,
            or_(
                OutboxEvent.status == "pending",
                and_(OutboxEvent.status == "sending", OutboxEvent.updated_at < stale_before),
            ),
        )
        .values(status="sending", updated_at=utc_now())
    )
    return result.rowcount == 1


def mark_event_sent(conn: Connection, event_id: str) -> bool:
    """Record a delivered event; only an event in ``sending`` is updated."""
    result = conn.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, OutboxEvent.status == "sending")
        .values(
            status="sent",
            attempt_count=OutboxEvent.attempt_count + 1,
            last_error=None,
            updated_at=utc_now(),
        )
    )
    return result.rowcount == 1


def record_event_failure(conn: Connection, event_id: str, error: str, give_up: bool) -> bool:
    """
    Count a failed delivery attempt and release the claim.

    Args:
        conn: Active database connection
        event_id: Event id
        error: Short error description stored on the row
        give_up: Mark the event failed instead of leaving it pending

    Returns:
        bool: False if the event was no longer claimed (nothing was written)
    """
    result = conn.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, OutboxEvent.status == "sending")
        .values(
            status="failed" if give_up else "pending",
            attempt_count=OutboxEvent.attempt_count + 1,
            last_error=error[:500],
            updated_at=utc_now(),
        )
    )
    return result.rowcount == 1
