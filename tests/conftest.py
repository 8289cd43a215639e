"""
Shared fixtures.

Configuration is read at import time, so the environment is prepared before
any rentaly module is imported. Integration tests run against a SQLite file
created per test.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALLOWED_ORIGINS", "*")
os.environ.setdefault("TX_BACKOFF_SECONDS", "0.01")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from rentaly.cache import blocked_dates_cache
from rentaly.db.engine import create_db_engine
from rentaly.db.writers.coupons import insert_coupon
from rentaly.db.writers.listings import upsert_listings
from rentaly.dependencies import get_db_engine
from rentaly.main import app
from rentaly.models.base import Base
from rentaly.services.assets import PropertyRef, VehicleRef
from rentaly.services.bookings import create_booking

PROPERTY_OWNER = "owner-1"
VEHICLE_OWNER = "owner-2"


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh SQLite database with every table created."""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'rentaly.db'}")
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture(autouse=True)
def clear_blocked_dates_cache() -> Generator[None, None, None]:
    blocked_dates_cache.clear()
    yield
    blocked_dates_cache.clear()


@pytest.fixture
def property_listing(engine: Engine) -> PropertyRef:
    """Property at 1000/day or 24000 per 30 days, owned by owner-1."""
    upsert_listings(
        engine,
        [
            {
                "id": "prop-1",
                "listing_type": "property",
                "owner_id": PROPERTY_OWNER,
                "name": "Sea View Villa",
                "price_per_day": Decimal("1000"),
                "price_per_month": Decimal("24000"),
            }
        ],
    )
    return PropertyRef("prop-1")


@pytest.fixture
def vehicle_listing(engine: Engine) -> VehicleRef:
    """Vehicle at 500/day, owned by owner-2."""
    upsert_listings(
        engine,
        [
            {
                "id": "car-1",
                "listing_type": "vehicle",
                "owner_id": VEHICLE_OWNER,
                "name": "City Hatchback",
                "price_per_day": Decimal("500"),
            }
        ],
    )
    return VehicleRef("car-1")


@pytest.fixture
def coupon_factory(engine: Engine) -> Callable[..., str]:
    """Create a coupon valid from yesterday for a year; returns its id."""

    def make(
        code: str = "SAVE10",
        discount_type: str = "percentage",
        value: Decimal = Decimal("10"),
        **options: Any,
    ) -> str:
        coupon_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        options.setdefault("valid_from", now - timedelta(days=1))
        options.setdefault("valid_until", now + timedelta(days=365))
        with engine.begin() as conn:
            insert_coupon(conn, coupon_id, code, discount_type, value, **options)
        return coupon_id

    return make


@pytest.fixture
def booking_factory(engine: Engine) -> Callable[..., dict[str, Any]]:
    """Create a pending booking through the lifecycle service."""

    def make(
        user_id: str,
        asset: Any,
        start_date: str = "2040-06-01",
        end_date: str = "2040-06-05",
        **kwargs: Any,
    ) -> dict[str, Any]:
        return create_booking(engine, user_id, asset, start_date, end_date, **kwargs)

    return make


@pytest.fixture
def api_client(engine: Engine) -> Generator[TestClient, None, None]:
    """TestClient bound to the per-test database, admission control off."""
    app.dependency_overrides[get_db_engine] = lambda: engine
    with patch("rentaly.routes.bookings.ADMISSION_CONTROL_ENABLED", False):
        yield TestClient(app)
    app.dependency_overrides.clear()
