# rentaly/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rentaly.config import ALLOWED_ORIGINS
from rentaly.logging_config import setup_logging
from rentaly.middleware import RequestIDMiddleware
from rentaly.routes.bookings import router as bookings_router
from rentaly.routes.coupons import router as coupons_router
from rentaly.routes.errors import register_exception_handlers
from rentaly.routes.health import router as health_router
from rentaly.routes.listings import router as listings_router
from rentaly.routes.metrics import router as metrics_router
from rentaly.routes.wallet import router as wallet_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Rentaly Booking API",
    description="Booking lifecycle, date arbitration, owner balances and coupons",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(bookings_router, tags=["Bookings"])
app.include_router(coupons_router, tags=["Coupons"])
app.include_router(listings_router, tags=["Listings"])
app.include_router(wallet_router, tags=["Wallet"])
