from sqlalchemy import Column, DateTime, String

from rentaly.config import SCHEMA
from rentaly.models.base import Base


class UserBooking(Base):
    """
    Per-user index of bookings grouped by progress.

    bucket is in_progress on creation, then booked on completion or
    cancelled on cancellation/rejection.
    """

    __tablename__ = "user_bookings"
    __table_args__ = {"schema": SCHEMA}

    user_id = Column(String(64), primary_key=True)
    booking_id = Column(String(36), primary_key=True)
    bucket = Column(String(16), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
