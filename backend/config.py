import logging
import os
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Use persistent storage path if running in container with volume mount
DATABASE_PATH = os.getenv("DATABASE_PATH", "./timesheets.db")
ENV = os.getenv("ENV", os.getenv("RENDER", "").lower() or "dev")

if os.getenv("DATABASE_URL"):
    DATABASE_URL = os.getenv("DATABASE_URL")
else:
    # Guard against SQLite fallback in production
    if ENV in ("prod", "production") or os.getenv("RENDER"):
        raise RuntimeError(
            "DATABASE_URL missing in production; refusing to start with SQLite. "
            "Please configure DATABASE_URL environment variable."
        )
    DATABASE_URL = f"sqlite:///{DATABASE_PATH}"

# Hosting providers hand out postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Company-wide calendar, used when a user has no timezone of their own
TIMESHEET_TIMEZONE = os.getenv("TIMESHEET_TIMEZONE", "UTC")
try:
    DEFAULT_TIMEZONE = ZoneInfo(TIMESHEET_TIMEZONE)
except (ZoneInfoNotFoundError, ValueError) as e:
    raise RuntimeError(f"TIMESHEET_TIMEZONE is not a valid IANA zone: {TIMESHEET_TIMEZONE!r}") from e

LEAVE_HOURS_PER_DAY = Decimal(os.getenv("LEAVE_HOURS_PER_DAY", "8"))

UNIT_OF_WORK_RETRIES = int(os.getenv("UNIT_OF_WORK_RETRIES", "3"))
