"""
Concurrency tests: racing approvals on one listing and racing coupon redemptions.

Each worker thread uses its own connection from the engine; SQLite serialises
the writing transactions, PostgreSQL does the same with the per-listing
advisory lock and the conditional usage increment.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable

import pytest
from sqlalchemy.engine import Engine

from rentaly.db.readers.balances import get_balance
from rentaly.db.readers.coupons import count_redemptions, get_coupon
from rentaly.db.readers.intervals import list_intervals
from rentaly.exceptions import CouponExhaustedError, DateConflictError, RentalError
from rentaly.services.assets import PropertyRef
from rentaly.services.bookings import approve_booking
from rentaly.services.coupons import apply_coupon, reconcile_coupons
from rentaly.services.state_machine import Caller

OWNER = Caller("owner-1")


def run_together(tasks: list[Callable[[], Any]]) -> list[Any]:
    """Start every task at the same moment; return results or raised exceptions."""
    barrier = threading.Barrier(len(tasks))

    def wrapped(task: Callable[[], Any]) -> Any:
        barrier.wait()
        try:
            return task()
        except RentalError as err:
            return err

    with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
        return list(pool.map(wrapped, tasks))


@pytest.mark.integration
def test_concurrent_overlapping_approvals_admit_exactly_one(
    engine: Engine, property_listing: PropertyRef, booking_factory: Callable[..., dict]
) -> None:
    """Test that of several overlapping approvals exactly one wins."""
    bookings = [
        booking_factory("guest-1", property_listing, "2040-06-01", "2040-06-05"),
        booking_factory("guest-2", property_listing, "2040-06-03", "2040-06-07"),
        booking_factory("guest-3", property_listing, "2040-06-05", "2040-06-05"),
    ]

    results = run_together(
        [lambda b=b: approve_booking(engine, b["id"], OWNER) for b in bookings]
    )

    winners = [r for r in results if isinstance(r, dict)]
    losers = [r for r in results if isinstance(r, DateConflictError)]
    assert len(winners) == 1
    assert len(losers) == 2
    assert {err.conflicting_booking_id for err in losers} == {winners[0]["id"]}

    with engine.connect() as conn:
        intervals = list_intervals(conn, "prop-1", "property")
        balance = get_balance(conn, "owner-1")
    assert [i["booking_id"] for i in intervals] == [winners[0]["id"]]
    assert balance is not None
    assert Decimal(balance["pending_balance"]) == Decimal(winners[0]["total_price"])


@pytest.mark.integration
def test_concurrent_redemptions_never_exceed_max_uses(
    engine: Engine,
    property_listing: PropertyRef,
    booking_factory: Callable[..., dict],
    coupon_factory: Callable[..., str],
) -> None:
    """Test that 20 users racing for a 5-use coupon produce exactly 5 redemptions."""
    coupon_id = coupon_factory("RACE5", max_uses=5)
    bookings = [booking_factory(f"guest-{n}", property_listing) for n in range(20)]

    results = run_together(
        [
            lambda b=b: apply_coupon(engine, b["id"], "race5", Caller(b["user_id"]))
            for b in bookings
        ]
    )

    successes = [r for r in results if isinstance(r, dict)]
    exhausted = [r for r in results if isinstance(r, CouponExhaustedError)]
    assert len(successes) == 5
    assert len(exhausted) == 15

    with engine.connect() as conn:
        coupon = get_coupon(conn, coupon_id)
        redemptions = count_redemptions(conn, coupon_id)
    assert coupon is not None
    assert coupon["used_count"] == 5
    assert redemptions == 5
    assert coupon["is_active"] is False

    assert reconcile_coupons(engine) == []
