from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from rentaly.models.balances import EarningsHistory, OwnerBalance


def get_balance(conn: Connection, owner_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch an owner's balance counters.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        owner_id (str): Owner id.

    Returns:
        Optional[dict[str, Any]]: Balance row, or None if the owner never earned anything
    """
    row = (
        conn.execute(select(OwnerBalance).where(OwnerBalance.owner_id == owner_id))
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def get_earnings_history(
    conn: Connection, owner_id: str, bucket: str, lock: bool = False
) -> Optional[dict[str, Any]]:
    """
    Fetch the rolling earnings aggregates for one owner and bucket.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        owner_id (str): Owner id.
        bucket (str): "properties" or "vehicles".
        lock (bool): Take a row lock (SELECT ... FOR UPDATE) for a following write.

    Returns:
        Optional[dict[str, Any]]: History row, or None
    """
    stmt = select(EarningsHistory).where(
        EarningsHistory.owner_id == owner_id, EarningsHistory.bucket == bucket
    )
    if lock:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def list_pending_balances(conn: Connection) -> dict[str, Any]:
    """Every owner's pending balance, keyed by owner id."""
    stmt = select(OwnerBalance.owner_id, OwnerBalance.pending_balance)
    return {owner_id: pending for owner_id, pending in conn.execute(stmt)}
