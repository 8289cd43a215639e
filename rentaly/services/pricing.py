"""
Server-side booking price computation from listing rates.

Day counts are inclusive: a stay from the 1st to the 5th is 5 days. With both
a daily and a monthly rate, stays of 30 days or more are billed in 30-day
chunks at the monthly rate plus leftover days at the daily rate; shorter stays
pay the cheaper of the daily rate and the monthly rate divided by 30.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from rentaly.exceptions import ValidationError
from rentaly.utils.dates import count_days
from rentaly.utils.money import to_money

DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class PriceQuote:
    total_price: Decimal
    total_days: int
    monthly_periods: int
    remaining_days: int
    monthly_charge: Decimal
    daily_charge: Decimal
    calculation_method: str


def _rate(value: Optional[Decimal]) -> Decimal:
    return Decimal(value) if value is not None and Decimal(value) > 0 else Decimal("0")


def calculate_price(
    start: str,
    end: str,
    daily_rate: Optional[Decimal],
    monthly_rate: Optional[Decimal],
) -> PriceQuote:
    """
    Price an inclusive date range.

    Args:
        start: First day, YYYY-MM-DD (already validated)
        end: Last day, YYYY-MM-DD (already validated, not before start)
        daily_rate: Price per day, if the listing has one
        monthly_rate: Price per 30 days, if the listing has one

    Returns:
        PriceQuote: Total rounded to cents plus its breakdown

    Raises:
        ValidationError: If the listing has neither rate
    """
    days = count_days(start, end)
    daily = _rate(daily_rate)
    monthly = _rate(monthly_rate)

    monthly_periods = 0
    remaining_days = 0
    monthly_charge = Decimal("0")

    if daily and monthly:
        if days >= DAYS_PER_MONTH:
            monthly_periods, remaining_days = divmod(days, DAYS_PER_MONTH)
            monthly_charge = monthly * monthly_periods
            daily_charge = daily * remaining_days
            method = f"{monthly_periods} month(s) + {remaining_days} day(s)"
        else:
            by_day = daily * days
            by_month = monthly * days / DAYS_PER_MONTH
            if by_month < by_day:
                daily_charge = by_month
                method = f"{days} day(s) at monthly-derived rate"
            else:
                daily_charge = by_day
                method = f"{days} day(s) at daily rate"
    elif daily:
        daily_charge = daily * days
        method = f"{days} day(s) at daily rate"
    elif monthly:
        daily_charge = monthly * days / DAYS_PER_MONTH
        method = f"{days} day(s) at monthly-derived rate"
    else:
        raise ValidationError(
            "No pricing information available for this listing", code="pricing_unavailable"
        )

    return PriceQuote(
        total_price=to_money(monthly_charge + daily_charge),
        total_days=days,
        monthly_periods=monthly_periods,
        remaining_days=remaining_days,
        monthly_charge=to_money(monthly_charge),
        daily_charge=to_money(daily_charge),
        calculation_method=method,
    )
