"""
Owner balance writes.

Every change is an SQL delta applied by the database (``col = col + :delta``)
so that concurrent transitions for the same owner never lose an update.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import update
from sqlalchemy.engine import Connection

from rentaly.db.writers._upsert import dialect_insert
from rentaly.models.balances import EarningsHistory, OwnerBalance
from rentaly.utils.datetime import utc_now

ZERO = Decimal("0")


def apply_pending_delta(conn: Connection, owner_id: str, delta: Decimal) -> Decimal:
    """
    Add delta (possibly negative) to an owner's pending balance.

    Args:
        conn: Active database connection (within transaction)
        owner_id: Owner id; the balance row is created on first use
        delta: Amount to add

    Returns:
        Decimal: Pending balance after the change
    """
    now = utc_now()
    stmt = dialect_insert(conn, OwnerBalance).values(
        owner_id=owner_id,
        pending_balance=delta,
        available_balance=ZERO,
        total_earnings=ZERO,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["owner_id"],
        set_={
            "pending_balance": OwnerBalance.pending_balance + stmt.excluded.pending_balance,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(OwnerBalance.pending_balance)
    return Decimal(conn.execute(stmt).scalar_one())


def realize_earnings(conn: Connection, owner_id: str, amount: Decimal) -> None:
    """
    Move amount from pending into available balance and total earnings.

    Args:
        conn: Active database connection (within transaction)
        owner_id: Owner id
        amount: Booking total being realised
    """
    now = utc_now()
    stmt = dialect_insert(conn, OwnerBalance).values(
        owner_id=owner_id,
        pending_balance=-amount,
        available_balance=amount,
        total_earnings=amount,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["owner_id"],
        set_={
            "pending_balance": OwnerBalance.pending_balance - stmt.excluded.available_balance,
            "available_balance": OwnerBalance.available_balance
            + stmt.excluded.available_balance,
            "total_earnings": OwnerBalance.total_earnings + stmt.excluded.total_earnings,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    conn.execute(stmt)


def ensure_earnings_history(conn: Connection, owner_id: str, bucket: str) -> None:
    """Create an empty history row for (owner, bucket) unless one exists."""
    stmt = dialect_insert(conn, EarningsHistory).values(
        owner_id=owner_id,
        bucket=bucket,
        daily=["0.00"] * 30,
        daily_last=None,
        monthly=["0.00"] * 12,
        monthly_last=None,
        yearly=[],
        updated_at=utc_now(),
    )
    conn.execute(stmt.on_conflict_do_nothing(index_elements=["owner_id", "bucket"]))


def save_earnings_history(
    conn: Connection, owner_id: str, bucket: str, history: dict[str, Any]
) -> None:
    """
    Store rolled earnings aggregates for (owner, bucket).

    The caller must have read the row with ``lock=True`` in the same transaction.
    """
    conn.execute(
        update(EarningsHistory)
        .where(EarningsHistory.owner_id == owner_id, EarningsHistory.bucket == bucket)
        .values(
            daily=history["daily"],
            daily_last=history["daily_last"],
            monthly=history["monthly"],
            monthly_last=history["monthly_last"],
            yearly=history["yearly"],
            updated_at=utc_now(),
        )
    )
