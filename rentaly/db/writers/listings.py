from typing import Any

import structlog
from sqlalchemy.engine import Engine

from rentaly.db.writers._upsert import upsert_with_distinct_check
from rentaly.models.listings import Listing
from rentaly.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

UPDATE_COLUMNS = ["owner_id", "name", "price_per_day", "price_per_month", "is_active"]


def upsert_listings(engine: Engine, data: list[dict[str, Any]]) -> int:
    """
    Upsert listing records pushed by the catalogue service.

    Only rows whose owner, name, prices or active flag changed are rewritten.

    Args:
        engine: SQLAlchemy Engine
        data: Listing dicts with id, listing_type, owner_id and optional
            name, price_per_day, price_per_month, is_active

    Returns:
        int: Number of rows submitted
    """
    now = utc_now()

    rows = []
    for item in data:
        if not item.get("id") or not item.get("listing_type") or not item.get("owner_id"):
            logger.warning("listing_skipped_missing_fields", listing_id=item.get("id"))
            continue
        rows.append(
            {
                "id": str(item["id"]),
                "listing_type": item["listing_type"],
                "owner_id": str(item["owner_id"]),
                "name": item.get("name"),
                "price_per_day": item.get("price_per_day"),
                "price_per_month": item.get("price_per_month"),
                "is_active": item.get("is_active", True),
                "created_at": now,
                "updated_at": now,
            }
        )

    if not rows:
        logger.info("no_listings_to_upsert")
        return 0

    with engine.begin() as conn:
        upsert_with_distinct_check(
            conn=conn,
            table=Listing,
            rows=rows,
            conflict_columns=["id", "listing_type"],
            update_columns=UPDATE_COLUMNS,
        )

    logger.info("listings_upserted", count=len(rows))
    return len(rows)
