"""
Rolling earnings history.

Realised earnings are kept per owner and asset bucket in three shapes:

- daily: 30 slots, the last one is the day of ``daily_last``
- monthly: 12 slots, the last one is the month of ``monthly_last``
- yearly: one {"year", "earnings"} entry per year, sorted ascending

Slots are shifted by the number of calendar days/months elapsed since the last
update (never more than the window), so idle periods show up as zeros.
Amounts are stored as two-decimal strings ("1234.50") inside the JSON
documents; numbers written by older rows are read back through the same path.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from rentaly.db.readers.balances import get_earnings_history
from rentaly.db.writers.balances import ensure_earnings_history, save_earnings_history
from rentaly.exceptions import ValidationError
from rentaly.utils.datetime import business_today
from rentaly.utils.money import money_text, to_money

logger = structlog.get_logger(__name__)

DAILY_SLOTS = 30
MONTHLY_SLOTS = 12
PERIODS = ("30D", "Monthly", "Yearly")
BUCKETS = ("properties", "vehicles")
EMPTY_SLOT = "0.00"


def _add(slot: Any, amount: Decimal) -> str:
    return money_text(to_money(slot) + Decimal(amount))


def _month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _months_between(last: str, current: str) -> int:
    last_year, last_month = (int(part) for part in last.split("-"))
    year, month = (int(part) for part in current.split("-"))
    return (year - last_year) * 12 + (month - last_month)


def _shift(values: list[Any], slots: int, steps: int) -> list[str]:
    padded = ([money_text(v) for v in values] + [EMPTY_SLOT] * slots)[:slots]
    steps = min(steps, slots)
    return padded[steps:] + [EMPTY_SLOT] * steps


def roll_daily(
    values: list[Any], last: Optional[str], today: date, amount: Decimal
) -> tuple[list[str], str]:
    """
    Add amount to today's slot of a 30-day window.

    Args:
        values: Current slots, oldest first
        last: Day of the newest slot (YYYY-MM-DD), None for an empty history
        today: Day the earnings are booked on
        amount: Amount to add

    Returns:
        tuple[list[str], str]: New slots and the new ``last`` day
    """
    if last is None:
        slots = [EMPTY_SLOT] * DAILY_SLOTS
        slots[-1] = money_text(amount)
        return slots, today.isoformat()

    elapsed = (today - date.fromisoformat(last)).days
    if elapsed > 0:
        slots = _shift(values, DAILY_SLOTS, elapsed)
        last = today.isoformat()
    else:
        # A clock that moved backwards books into the newest slot
        slots = _shift(values, DAILY_SLOTS, 0)
    slots[-1] = _add(slots[-1], amount)
    return slots, last


def roll_monthly(
    values: list[Any], last: Optional[str], today: date, amount: Decimal
) -> tuple[list[str], str]:
    """Same as roll_daily for the 12-month window keyed by YYYY-MM."""
    current = _month_key(today)
    if last is None:
        slots = [EMPTY_SLOT] * MONTHLY_SLOTS
        slots[-1] = money_text(amount)
        return slots, current

    elapsed = _months_between(last, current)
    if elapsed > 0:
        slots = _shift(values, MONTHLY_SLOTS, elapsed)
        last = current
    else:
        slots = _shift(values, MONTHLY_SLOTS, 0)
    slots[-1] = _add(slots[-1], amount)
    return slots, last


def roll_yearly(entries: list[dict[str, Any]], today: date, amount: Decimal) -> list[dict[str, Any]]:
    """Add amount to the entry for today's year, creating it if needed."""
    yearly = [
        {"year": entry["year"], "earnings": money_text(entry["earnings"])} for entry in entries
    ]
    for entry in yearly:
        if entry["year"] == today.year:
            entry["earnings"] = _add(entry["earnings"], amount)
            break
    else:
        yearly.append({"year": today.year, "earnings": money_text(amount)})
        yearly.sort(key=lambda entry: entry["year"])
    return yearly


def add_earnings(history: dict[str, Any], amount: Decimal, today: date) -> dict[str, Any]:
    """
    Return the history with amount booked on today in all three shapes.

    Args:
        history: Row-like dict with daily, daily_last, monthly, monthly_last, yearly
        amount: Realised amount
        today: Business day of the realisation
    """
    daily, daily_last = roll_daily(history["daily"], history["daily_last"], today, amount)
    monthly, monthly_last = roll_monthly(
        history["monthly"], history["monthly_last"], today, amount
    )
    return {
        "daily": daily,
        "daily_last": daily_last,
        "monthly": monthly,
        "monthly_last": monthly_last,
        "yearly": roll_yearly(history["yearly"], today, amount),
    }


def record_realized_earnings(
    conn: Connection, owner_id: str, bucket: str, amount: Decimal, today: date
) -> None:
    """
    Book a completed booking's total into the owner's history, in the caller's transaction.

    The history row is locked before it is read so that two completions for the
    same owner cannot overwrite each other's update.
    """
    ensure_earnings_history(conn, owner_id, bucket)
    current = get_earnings_history(conn, owner_id, bucket, lock=True)
    if current is None:
        raise RuntimeError(f"Earnings history for {owner_id}/{bucket} not found after insert")
    save_earnings_history(conn, owner_id, bucket, add_earnings(current, amount, today))


def _labels_daily(today: date) -> list[str]:
    days = [today - timedelta(days=offset) for offset in range(DAILY_SLOTS - 1, -1, -1)]
    return [f"{day:%b} {day.day}" for day in days]


def _labels_monthly(today: date) -> list[str]:
    labels = []
    for offset in range(MONTHLY_SLOTS - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - offset
        month = date(index // 12, index % 12 + 1, 1)
        labels.append(f"{month:%b} {month:%y}")
    return labels


def earnings_view(
    history: Optional[dict[str, Any]], period: str, today: date
) -> dict[str, Any]:
    """
    Chart-ready slice of a history, aligned on today.

    The stored window is shifted (not persisted) by the time elapsed since its
    last update so that the newest slot always stands for today / this month.

    Returns:
        dict: data (Decimal amounts), labels and total
    """
    if period not in PERIODS:
        raise ValidationError(f"Invalid period {period!r}", details={"allowed": list(PERIODS)})

    if history is None:
        return {"data": [], "labels": [], "total": Decimal("0.00")}

    if period == "30D":
        data = list(history["daily"])
        if history["daily_last"]:
            elapsed = (today - date.fromisoformat(history["daily_last"])).days
            data = _shift(data, DAILY_SLOTS, max(elapsed, 0))
        labels = _labels_daily(today)
    elif period == "Monthly":
        data = list(history["monthly"])
        if history["monthly_last"]:
            elapsed = _months_between(history["monthly_last"], _month_key(today))
            data = _shift(data, MONTHLY_SLOTS, max(elapsed, 0))
        labels = _labels_monthly(today)
    else:
        data = [entry["earnings"] for entry in history["yearly"]]
        labels = [str(entry["year"]) for entry in history["yearly"]]

    amounts = [to_money(value) for value in data]
    return {"data": amounts, "labels": labels, "total": sum(amounts, Decimal("0.00"))}


def get_earnings(
    db_engine: Engine,
    owner_id: str,
    period: str = "30D",
    bucket: str = "properties",
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Earnings chart for the wallet view.

    Args:
        db_engine: SQLAlchemy Engine
        owner_id: Owner id
        period: "30D", "Monthly" or "Yearly"
        bucket: "properties" or "vehicles"
        today: Business day to align on (defaults to today)

    Returns:
        dict: data, labels, total, period, bucket

    Raises:
        ValidationError: On an unknown period or bucket
    """
    if bucket not in BUCKETS:
        raise ValidationError(f"Invalid bucket {bucket!r}", details={"allowed": list(BUCKETS)})

    with db_engine.connect() as conn:
        history = get_earnings_history(conn, owner_id, bucket)

    view = earnings_view(history, period, today or business_today())
    view.update({"period": period, "bucket": bucket})
    return view
