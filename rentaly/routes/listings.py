from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.engine import Engine

from rentaly.config import BLOCKED_DATES_CACHE_SECONDS
from rentaly.db.writers.listings import upsert_listings
from rentaly.dependencies import get_caller, get_db_engine, require_admin
from rentaly.exceptions import InternalError, RentalError
from rentaly.routes._encoding import render
from rentaly.schemas.listings import ListingsUpsertPayload
from rentaly.services.assets import asset_ref
from rentaly.services.bookings import list_blocked_dates
from rentaly.services.state_machine import Caller

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/listings/{listing_type}/{listing_id}/blocked-dates", status_code=status.HTTP_200_OK)
def blocked_dates_endpoint(
    listing_type: str,
    listing_id: str,
    response: Response,
    range_from: Optional[str] = Query(None, alias="from", description="Window start, YYYY-MM-DD"),
    range_to: Optional[str] = Query(None, alias="to", description="Window end, YYYY-MM-DD"),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Calendar view of a listing's confirmed stays.

    Public and cacheable for a few seconds; approval re-checks conflicts
    authoritatively.

    Returns:
        dict: blocked_ranges and the expanded blocked_dates
    """
    asset = asset_ref(listing_type, listing_id)
    result = list_blocked_dates(db_engine, asset, range_from, range_to)
    response.headers["Cache-Control"] = f"public, max-age={BLOCKED_DATES_CACHE_SECONDS}"
    return render({"listing_type": asset.listing_type, "listing_id": asset.id, **result})


@router.post("/listings", status_code=status.HTTP_200_OK)
def upsert_listings_endpoint(
    payload: ListingsUpsertPayload,
    caller: Caller = Depends(get_caller),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Sync listings from the catalogue service (admin only).

    Args:
        payload: Listings to create or update
        caller: Authenticated admin
        db_engine: SQLAlchemy Engine

    Returns:
        dict: Number of listings submitted
    """
    try:
        require_admin(caller)
        count = upsert_listings(db_engine, [item.model_dump() for item in payload.listings])
        return render({"message": "Listings synced", "count": count})

    except RentalError:
        raise
    except Exception as e:
        logger.exception("listing_sync_failed", error=str(e))
        raise InternalError("Internal server error")
