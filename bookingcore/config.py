import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookingcore.db")

# Connection pool (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Upper bound on waiting for the provider calendar lock before failing with a retryable error
DB_LOCK_TIMEOUT_SECONDS = float(os.getenv("DB_LOCK_TIMEOUT_SECONDS", "5"))

# Read-only availability queries retry transient store failures
STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
STORE_RETRY_DELAY_SECONDS = float(os.getenv("STORE_RETRY_DELAY_SECONDS", "0.5"))

# Recurring series larger than this are rejected before touching the store
MAX_SERIES_OCCURRENCES = int(os.getenv("MAX_SERIES_OCCURRENCES", "366"))

# Working day granted to a provider that has no weekly template at all
DEFAULT_WORKING_DAY_START = os.getenv("DEFAULT_WORKING_DAY_START", "09:00")
DEFAULT_WORKING_DAY_END = os.getenv("DEFAULT_WORKING_DAY_END", "21:00")

DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "Europe/Kyiv")

# Country code prepended to client phones written in local format
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "380")

# Outbound notifications (Telegram/SMS/email relay lives behind this webhook)
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
