import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reservations.db")

# Auth / JWT
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Nominal number of bookable hours per room per day, used as the
# denominator of every utilization figure.
HOURS_PER_DAY = float(os.getenv("HOURS_PER_DAY", "12"))

# Rate limiting (per client IP)
RATE_LIMIT = os.getenv("RATE_LIMIT", "60/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Circuit breaker around the notification dispatcher
NOTIFY_BREAKER_FAIL_MAX = int(os.getenv("NOTIFY_BREAKER_FAIL_MAX", "3"))
NOTIFY_BREAKER_RESET_TIMEOUT = int(os.getenv("NOTIFY_BREAKER_RESET_TIMEOUT", "60"))
