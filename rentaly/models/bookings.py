# models/bookings.py

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Numeric, String

from rentaly.config import SCHEMA
from rentaly.models.base import Base


class Booking(Base):
    """
    One request to rent a property or a vehicle for an inclusive date range.

    Dates are stored as YYYY-MM-DD strings so that range comparisons are plain
    string comparisons. ``status`` is only ever changed through a conditional
    UPDATE guarded by the status the caller observed.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(property_id IS NULL) <> (vehicle_id IS NULL)",
            name="ck_bookings_exactly_one_asset",
        ),
        CheckConstraint("start_date <= end_date", name="ck_bookings_date_order"),
        CheckConstraint("discount_amount <= original_price", name="ck_bookings_discount_cap"),
        Index("ix_bookings_user_status", "user_id", "status"),
        Index("ix_bookings_property_dates", "property_id", "start_date", "end_date"),
        Index("ix_bookings_vehicle_dates", "vehicle_id", "start_date", "end_date"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    property_id = Column(String(64), nullable=True)
    vehicle_id = Column(String(64), nullable=True)
    start_date = Column(String(10), nullable=False)
    end_date = Column(String(10), nullable=False)
    original_price = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    payment_status = Column(String(16), nullable=False, default="pending")
    coupon_id = Column(String(36), nullable=True)  # Set once by coupon redemption
    coupon_code = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
