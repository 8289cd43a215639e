from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ListingPayload(BaseModel):
    """
    Schema for one listing pushed by the catalogue service.
    Only the fields the booking flow needs are stored.
    """

    id: str = Field(..., min_length=1, description="Listing ID")
    listing_type: Literal["property", "vehicle"] = Field(..., description="Kind of listing")
    owner_id: str = Field(..., min_length=1, description="Owner user ID")
    name: Optional[str] = Field(None, description="Display name")
    price_per_day: Optional[Decimal] = Field(None, ge=0, description="Daily rate")
    price_per_month: Optional[Decimal] = Field(None, ge=0, description="Rate per 30 days")
    is_active: bool = Field(True, description="Listing can be booked")


class ListingsUpsertPayload(BaseModel):
    listings: list[ListingPayload] = Field(..., description="Listings to create or update")
