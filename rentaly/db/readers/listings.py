from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from rentaly.models.listings import Listing


def get_listing(conn: Connection, listing_id: str, listing_type: str) -> Optional[dict[str, Any]]:
    """
    Fetch an active listing.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        listing_id (str): Listing id.
        listing_type (str): "property" or "vehicle".

    Returns:
        Optional[dict[str, Any]]: Listing row, or None if missing or inactive
    """
    stmt = select(Listing).where(
        Listing.id == listing_id,
        Listing.listing_type == listing_type,
        Listing.is_active.is_(True),
    )
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None
