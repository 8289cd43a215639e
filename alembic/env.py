from logging.config import fileConfig
from typing import Any

from sqlalchemy import engine_from_config, pool
from sqlalchemy.schema import CreateSchema

from alembic import context  # type: ignore[attr-defined]
from rentaly.config import DATABASE_URL, SCHEMA
from rentaly.models.balances import EarningsHistory, OwnerBalance  # noqa: F401
from rentaly.models.base import Base
from rentaly.models.blocked_intervals import BlockedInterval  # noqa: F401
from rentaly.models.bookings import Booking  # noqa: F401
from rentaly.models.coupons import Coupon, CouponAssignment, CouponRedemption  # noqa: F401
from rentaly.models.listings import Listing  # noqa: F401
from rentaly.models.outbox import OutboxEvent  # noqa: F401
from rentaly.models.user_bookings import UserBooking  # noqa: F401

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def include_object(
    object_: Any,
    name: str,
    type_: str,
    reflected: bool,
    compare_to: Any,
) -> bool:
    if hasattr(object_, "schema") and object_.schema != SCHEMA:
        return False
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    This configures the context with just a URL and not an Engine; calls to
    context.execute() emit the given string to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=True,
        include_object=include_object,
        version_table_schema=SCHEMA,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_schemas=True,
            include_object=include_object,
            version_table_schema=SCHEMA,
        )
        # The version table lives in SCHEMA, so it must exist first
        connection.execute(CreateSchema(SCHEMA, if_not_exists=True))

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
