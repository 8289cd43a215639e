from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class BookingCreatePayload(BaseModel):
    """
    Schema for requesting a booking of one property or vehicle.

    total_price is only used for listings that carry no rates of their own.
    """

    listing_type: Literal["property", "vehicle"] = Field(..., description="Kind of listing")
    listing_id: str = Field(..., min_length=1, description="Listing ID")
    start_date: str = Field(..., description="First day of the stay, YYYY-MM-DD")
    end_date: str = Field(..., description="Last day of the stay, YYYY-MM-DD")
    total_price: Optional[Decimal] = Field(None, gt=0, description="Client-side total price")
    coupon_code: Optional[str] = Field(None, description="Coupon to redeem on creation")
