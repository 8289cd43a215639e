from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class CouponValidatePayload(BaseModel):
    """Schema for a read-only coupon check against a booking amount."""

    code: str = Field(..., min_length=1, description="Coupon code")
    amount: Decimal = Field(..., gt=0, description="Booking amount before discount")
    listing_type: Optional[Literal["property", "vehicle"]] = Field(
        None, description="Kind of listing the booking is for"
    )


class CouponApplyPayload(BaseModel):
    booking_id: str = Field(..., min_length=1, description="Pending booking ID")
    code: str = Field(..., min_length=1, description="Coupon code")
