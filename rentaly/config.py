import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = os.getenv("DB_SCHEMA", "rentals")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Calendar dates are derived in this zone when a datetime has to be turned into YYYY-MM-DD
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Kolkata")

# Storage transactions that lose a write race are retried this many times in total
TX_MAX_ATTEMPTS = int(os.getenv("TX_MAX_ATTEMPTS", "3"))
TX_BACKOFF_SECONDS = float(os.getenv("TX_BACKOFF_SECONDS", "0.05"))

ADMISSION_CONTROL_ENABLED = os.getenv("ADMISSION_CONTROL_ENABLED", "true").lower() == "true"
MAX_ACTIVE_BOOKINGS = int(os.getenv("MAX_ACTIVE_BOOKINGS", "5"))

BLOCKED_DATES_CACHE_SECONDS = int(os.getenv("BLOCKED_DATES_CACHE_SECONDS", "5"))

# Outbox delivery; events stay pending when no webhook is configured
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
ALERT_RECIPIENT = os.getenv("ALERT_RECIPIENT", "ops@rentaly.com")
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "50"))
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
# Events left in "sending" longer than this by a stopped dispatcher are claimed again
OUTBOX_CLAIM_TIMEOUT_SECONDS = int(os.getenv("OUTBOX_CLAIM_TIMEOUT_SECONDS", "300"))
