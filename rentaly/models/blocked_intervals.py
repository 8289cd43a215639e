from sqlalchemy import Column, DateTime, Index, Integer, String

from rentaly.config import SCHEMA
from rentaly.models.base import Base


class BlockedInterval(Base):
    """
    Date range during which a listing is unavailable because of a confirmed booking.

    At most one row exists per booking (unique booking_id). For a fixed
    (listing_id, listing_type) no two rows overlap; that property is kept by
    checking and inserting under a per-listing lock in the approving transaction.
    """

    __tablename__ = "blocked_intervals"
    __table_args__ = (
        Index("ix_blocked_intervals_listing_range", "listing_id", "listing_type", "start", "end"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(String(64), nullable=False)
    listing_type = Column(String(16), nullable=False)  # property | vehicle
    start = Column(String(10), nullable=False)
    end = Column(String(10), nullable=False)
    booking_id = Column(String(36), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
