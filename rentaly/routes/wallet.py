from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from rentaly.db.readers.balances import get_balance
from rentaly.dependencies import get_caller, get_db_engine
from rentaly.routes._encoding import render
from rentaly.services.earnings import get_earnings
from rentaly.services.state_machine import Caller

router = APIRouter()

ZERO = Decimal("0")


@router.get("/wallet/balance", status_code=status.HTTP_200_OK)
def wallet_balance_endpoint(
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    The caller's owner balances.

    Returns:
        dict: pending_balance, available_balance, total_earnings (zero for new owners)
    """
    with db_engine.connect() as conn:
        balance = get_balance(conn, caller.user_id)

    if balance is None:
        balance = {"pending_balance": ZERO, "available_balance": ZERO, "total_earnings": ZERO}
    return render(
        {
            "owner_id": caller.user_id,
            "pending_balance": balance["pending_balance"],
            "available_balance": balance["available_balance"],
            "total_earnings": balance["total_earnings"],
        }
    )


@router.get("/wallet/earnings", status_code=status.HTTP_200_OK)
def wallet_earnings_endpoint(
    period: str = Query("30D", description="30D, Monthly or Yearly"),
    bucket: str = Query("properties", description="properties or vehicles"),
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    return render(get_earnings(db_engine, caller.user_id, period=period, bucket=bucket))
