# models/coupons.py

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from rentaly.config import SCHEMA
from rentaly.models.base import Base, JSONDocument


class Coupon(Base):
    """
    Discount code with global and per-user usage caps.

    ``used_count`` only moves through a conditional increment
    (``WHERE max_uses IS NULL OR used_count < max_uses``); the check constraint
    is the storage-level backstop for ``used_count <= max_uses``.
    """

    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses", name="ck_coupons_usage_cap"
        ),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True)
    code = Column(String(64), nullable=False, unique=True)  # Stored upper-case
    description = Column(Text, nullable=True)
    discount_type = Column(String(16), nullable=False)  # percentage | fixed
    value = Column(Numeric(12, 2), nullable=False)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    min_booking_amount = Column(Numeric(12, 2), nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    max_uses = Column(Integer, nullable=True)  # NULL means unlimited
    used_count = Column(Integer, nullable=False, default=0)
    max_uses_per_user = Column(Integer, nullable=False, default=1)
    applicable_for = Column(String(16), nullable=False, default="both")  # property | vehicle | both
    visibility = Column(String(16), nullable=False, default="public")  # public | targeted
    specific_users = Column(JSONDocument, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class CouponRedemption(Base):
    """Immutable audit record of one coupon applied to one booking."""

    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        UniqueConstraint("coupon_id", "booking_id", name="uq_coupon_redemptions_coupon_booking"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    coupon_id = Column(
        String(36), ForeignKey(f"{SCHEMA}.coupons.id", ondelete="RESTRICT"), nullable=False
    )
    coupon_code = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    booking_id = Column(String(36), nullable=False, index=True)
    original_price = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    final_price = Column(Numeric(12, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False)


class CouponAssignment(Base):
    """A user's claim on a coupon; one per (coupon, user)."""

    __tablename__ = "coupon_assignments"
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", name="uq_coupon_assignments_coupon_user"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    coupon_id = Column(
        String(36), ForeignKey(f"{SCHEMA}.coupons.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    used_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
