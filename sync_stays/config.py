import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"
LOG_FORMAT = os.getenv("LOG_FORMAT", "console" if DEBUG else "json").lower()

DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = "stays"

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
]

# Calendar fetching
FEED_FETCH_TIMEOUT_SECONDS = float(os.getenv("FEED_FETCH_TIMEOUT_SECONDS", "30"))
MAX_FEED_WORKERS = int(os.getenv("MAX_FEED_WORKERS", "4"))

# Concurrency guard
SYNC_LOCK_TTL_SECONDS = float(os.getenv("SYNC_LOCK_TTL_SECONDS", "120"))
SYNC_DEBOUNCE_SECONDS = float(os.getenv("SYNC_DEBOUNCE_SECONDS", "60"))

# Enrichment
ENRICHMENT_DATE_SLACK_DAYS = int(os.getenv("ENRICHMENT_DATE_SLACK_DAYS", "1"))
