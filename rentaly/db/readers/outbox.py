from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from rentaly.models.outbox import OutboxEvent


def fetch_claimable_events(
    conn: Connection, limit: int, stale_before: datetime
) -> list[dict[str, Any]]:
    """
    Oldest events a dispatcher may claim: pending ones, and ones left in
    ``sending`` since before ``stale_before`` by a dispatcher that stopped.

    On PostgreSQL the rows are locked with SKIP LOCKED, so concurrent
    dispatchers read disjoint batches. Callers still claim each row with
    ``claim_event`` in the same transaction.

    Args:
        conn (Connection): An active SQLAlchemy connection inside a transaction.
        limit (int): Batch size.
        stale_before (datetime): Claims older than this are considered abandoned.

    Returns:
        list[dict[str, Any]]: Event rows in creation order
    """
    stmt = (
        select(OutboxEvent)
        .where(
            or_(
                OutboxEvent.status == "pending",
                and_(OutboxEvent.status == "sending", OutboxEvent.updated_at < stale_before),
            )
        )
        .order_by(OutboxEvent.created_at, OutboxEvent.id)
        .limit(limit)
    )
    if conn.dialect.name == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def list_events_for_aggregate(conn: Connection, aggregate_id: str) -> list[dict[str, Any]]:
    """All outbox events recorded for one booking or owner."""
    stmt = (
        select(OutboxEvent)
        .where(OutboxEvent.aggregate_id == aggregate_id)
        .order_by(OutboxEvent.created_at, OutboxEvent.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]
