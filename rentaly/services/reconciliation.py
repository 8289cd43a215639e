"""
Pending-balance reconciliation.

An owner's pending balance must equal the sum of total_price over their
confirmed bookings. This job reports (and optionally repairs) owners whose
stored counter drifted, e.g. after a manual database edit.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy.engine import Connection, Engine

from rentaly.db.readers.bookings import confirmed_totals_by_owner
from rentaly.db.readers.balances import list_pending_balances
from rentaly.db.transaction import run_in_transaction
from rentaly.db.writers.balances import apply_pending_delta

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def find_balance_drift(conn: Connection) -> list[dict[str, Any]]:
    """
    Owners whose stored pending balance differs from their confirmed bookings.

    Returns:
        list[dict[str, Any]]: owner_id, stored, expected, difference (expected - stored)
    """
    expected = confirmed_totals_by_owner(conn)
    stored = list_pending_balances(conn)

    drift = []
    for owner_id in sorted(set(expected) | set(stored)):
        want = Decimal(expected.get(owner_id) or ZERO)
        have = Decimal(stored.get(owner_id) or ZERO)
        if want != have:
            drift.append(
                {"owner_id": owner_id, "stored": have, "expected": want, "difference": want - have}
            )
    return drift


def reconcile_pending_balances(db_engine: Engine, apply: bool = True) -> list[dict[str, Any]]:
    """
    Report and optionally repair pending-balance drift.

    The repair recomputes the drift inside one transaction and applies the
    difference as a delta, so transitions committed between the report and the
    repair are not overwritten.

    Args:
        db_engine: SQLAlchemy Engine
        apply: Write the corrections (False only reports)

    Returns:
        list[dict[str, Any]]: Drift found before any correction
    """
    with db_engine.connect() as conn:
        report = find_balance_drift(conn)

    for entry in report:
        logger.warning(
            "pending_balance_drift",
            owner_id=entry["owner_id"],
            stored=str(entry["stored"]),
            expected=str(entry["expected"]),
        )

    if apply and report:

        def fix(conn: Connection) -> int:
            current = find_balance_drift(conn)
            for entry in current:
                apply_pending_delta(conn, entry["owner_id"], entry["difference"])
            return len(current)

        fixed = run_in_transaction(db_engine, "reconcile_balances", fix)
        logger.info("pending_balances_reconciled", owners=fixed)

    return report
