# models/listings.py

from sqlalchemy import Boolean, Column, DateTime, Numeric, String

from rentaly.config import SCHEMA
from rentaly.models.base import Base


class Listing(Base):
    """
    Rentable asset as seen by the booking core: who owns it and what it costs.

    The catalogue itself is managed elsewhere and pushed here through the
    listings upsert endpoint.
    """

    __tablename__ = "listings"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(64), primary_key=True)
    listing_type = Column(String(16), primary_key=True)  # property | vehicle
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    price_per_day = Column(Numeric(12, 2), nullable=True)
    price_per_month = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
