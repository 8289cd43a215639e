from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Decimal rounded to cents; accepts Decimal, int, str and legacy float values."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_text(value: Any) -> str:
    """
    Canonical text form of an amount, e.g. "4000.00" or "-250.50".

    Used wherever money leaves Python: API responses, outbox payloads and
    JSON documents stored in the database.
    """
    return str(to_money(value))
