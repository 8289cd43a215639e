"""
Asset references.

A booking points at exactly one property or one vehicle. The two variants
answer the same questions (who owns it, what does a stay cost) from listing
storage, so the lifecycle service never branches on a type name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Union

from sqlalchemy.engine import Connection

from rentaly.db.readers.listings import get_listing
from rentaly.exceptions import NotFoundError, ValidationError
from rentaly.services.pricing import PriceQuote, calculate_price


@dataclass(frozen=True)
class _ListingRef:
    id: str

    listing_type: ClassVar[str]
    asset_column: ClassVar[str]
    earnings_bucket: ClassVar[str]

    def listing(self, conn: Connection) -> dict[str, Any]:
        """
        Load the active listing behind this reference.

        Raises:
            NotFoundError: If the listing does not exist or is inactive
        """
        listing = get_listing(conn, self.id, self.listing_type)
        if listing is None:
            raise NotFoundError(
                f"{self.listing_type.capitalize()} not found",
                code="asset_not_found",
                details={"listing_type": self.listing_type, "listing_id": self.id},
            )
        return listing

    def owner_of(self, conn: Connection) -> str:
        return str(self.listing(conn)["owner_id"])

    def booking_columns(self) -> dict[str, Optional[str]]:
        """property_id / vehicle_id values for a booking row."""
        return {
            "property_id": self.id if self.asset_column == "property_id" else None,
            "vehicle_id": self.id if self.asset_column == "vehicle_id" else None,
        }


@dataclass(frozen=True)
class PropertyRef(_ListingRef):
    listing_type: ClassVar[str] = "property"
    asset_column: ClassVar[str] = "property_id"
    earnings_bucket: ClassVar[str] = "properties"

    def price_of(self, conn: Connection, start: str, end: str) -> Optional[PriceQuote]:
        """Quote from the daily and monthly rates; None when the listing has neither."""
        listing = self.listing(conn)
        if not listing["price_per_day"] and not listing["price_per_month"]:
            return None
        return calculate_price(start, end, listing["price_per_day"], listing["price_per_month"])


@dataclass(frozen=True)
class VehicleRef(_ListingRef):
    listing_type: ClassVar[str] = "vehicle"
    asset_column: ClassVar[str] = "vehicle_id"
    earnings_bucket: ClassVar[str] = "vehicles"

    def price_of(self, conn: Connection, start: str, end: str) -> Optional[PriceQuote]:
        """Vehicles are rented by the day only."""
        listing = self.listing(conn)
        if not listing["price_per_day"]:
            return None
        return calculate_price(start, end, listing["price_per_day"], None)


AssetRef = Union[PropertyRef, VehicleRef]

_VARIANTS: dict[str, type] = {"property": PropertyRef, "vehicle": VehicleRef}

LISTING_TYPES = tuple(_VARIANTS)


def asset_ref(listing_type: str, listing_id: str) -> AssetRef:
    """
    Build the reference for a (listing_type, listing_id) pair.

    Raises:
        ValidationError: On an unknown listing type or empty id
    """
    variant = _VARIANTS.get(listing_type)
    if variant is None:
        raise ValidationError(
            f"Unknown listing type {listing_type!r}",
            details={"allowed": list(LISTING_TYPES)},
        )
    if not listing_id:
        raise ValidationError("listing_id is required", code="missing_fields")
    ref: AssetRef = variant(str(listing_id))
    return ref


def asset_ref_for_booking(booking: Mapping[str, Any]) -> AssetRef:
    """Reference of the asset a booking row points at."""
    if booking.get("property_id"):
        return PropertyRef(str(booking["property_id"]))
    return VehicleRef(str(booking["vehicle_id"]))
