"""Create booking, ledger, coupon and outbox tables

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-19 10:12:31.118204

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f2a9c1d7b40"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "rentals"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "listings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("listing_type", sa.String(16), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("price_per_day", sa.Numeric(12, 2), nullable=True),
        sa.Column("price_per_month", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_rentals_listings_owner_id", "listings", ["owner_id"], schema=SCHEMA)

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(64), nullable=True),
        sa.Column("vehicle_id", sa.String(64), nullable=True),
        sa.Column("start_date", sa.String(10), nullable=False),
        sa.Column("end_date", sa.String(10), nullable=False),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("coupon_id", sa.String(36), nullable=True),
        sa.Column("coupon_code", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(property_id IS NULL) <> (vehicle_id IS NULL)",
            name="ck_bookings_exactly_one_asset",
        ),
        sa.CheckConstraint("start_date <= end_date", name="ck_bookings_date_order"),
        sa.CheckConstraint("discount_amount <= original_price", name="ck_bookings_discount_cap"),
        schema=SCHEMA,
    )
    op.create_index("ix_rentals_bookings_owner_id", "bookings", ["owner_id"], schema=SCHEMA)
    op.create_index("ix_bookings_user_status", "bookings", ["user_id", "status"], schema=SCHEMA)
    op.create_index(
        "ix_bookings_property_dates",
        "bookings",
        ["property_id", "start_date", "end_date"],
        schema=SCHEMA,
    )
    op.create_index(
        "ix_bookings_vehicle_dates",
        "bookings",
        ["vehicle_id", "start_date", "end_date"],
        schema=SCHEMA,
    )

    op.create_table(
        "blocked_intervals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("listing_id", sa.String(64), nullable=False),
        sa.Column("listing_type", sa.String(16), nullable=False),
        sa.Column("start", sa.String(10), nullable=False),
        sa.Column("end", sa.String(10), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_blocked_intervals_listing_range",
        "blocked_intervals",
        ["listing_id", "listing_type", "start", "end"],
        schema=SCHEMA,
    )

    op.create_table(
        "owner_balances",
        sa.Column("owner_id", sa.String(64), primary_key=True),
        sa.Column("pending_balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("available_balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )

    op.create_table(
        "earnings_history",
        sa.Column("owner_id", sa.String(64), primary_key=True),
        sa.Column("bucket", sa.String(16), primary_key=True),
        sa.Column("daily", postgresql.JSONB(), nullable=False),
        sa.Column("daily_last", sa.String(10), nullable=True),
        sa.Column("monthly", postgresql.JSONB(), nullable=False),
        sa.Column("monthly_last", sa.String(7), nullable=True),
        sa.Column("yearly", postgresql.JSONB(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )

    op.create_table(
        "user_bookings",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("booking_id", sa.String(36), primary_key=True),
        sa.Column("bucket", sa.String(16), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_rentals_user_bookings_bucket", "user_bookings", ["bucket"], schema=SCHEMA)

    op.create_table(
        "coupons",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_discount_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("min_booking_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("applicable_for", sa.String(16), nullable=False, server_default="both"),
        sa.Column("visibility", sa.String(16), nullable=False, server_default="public"),
        sa.Column("specific_users", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses", name="ck_coupons_usage_cap"
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "coupon_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "coupon_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.coupons.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("coupon_code", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=False),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("final_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "coupon_id", "booking_id", name="uq_coupon_redemptions_coupon_booking"
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_rentals_coupon_redemptions_user_id", "coupon_redemptions", ["user_id"], schema=SCHEMA
    )
    op.create_index(
        "ix_rentals_coupon_redemptions_booking_id",
        "coupon_redemptions",
        ["booking_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "coupon_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "coupon_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.coupons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_assignments_coupon_user"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_rentals_coupon_assignments_user_id", "coupon_assignments", ["user_id"], schema=SCHEMA
    )

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_outbox_events_status_created", "outbox_events", ["status", "created_at"], schema=SCHEMA
    )
    op.create_index(
        "ix_rentals_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "outbox_events",
        "coupon_assignments",
        "coupon_redemptions",
        "coupons",
        "user_bookings",
        "earnings_history",
        "owner_balances",
        "blocked_intervals",
        "bookings",
        "listings",
    ):
        op.drop_table(table, schema=SCHEMA)
