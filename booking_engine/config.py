import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_engine.db")

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Bound on every SQL statement (milliseconds). 0 disables the bound.
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

# Frontend base URL used for admin notification links and email buttons
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")

# Requests slower than this (seconds) are logged as warnings
SLOW_REQUEST_THRESHOLD = float(os.getenv("SLOW_REQUEST_THRESHOLD", "2.0"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Bookings <noreply@example.com>")

# Scheduling defaults
DEFAULT_OCCURRENCES_AHEAD = int(os.getenv("DEFAULT_OCCURRENCES_AHEAD", "8"))
DEFAULT_BOOKING_DURATION_MINUTES = int(os.getenv("DEFAULT_BOOKING_DURATION_MINUTES", "60"))
HOLIDAY_SKIP_MAX_ATTEMPTS = int(os.getenv("HOLIDAY_SKIP_MAX_ATTEMPTS", "31"))

# Earnings defaults - business keeps DEFAULT_COMMISSION_RATE percent when no wage is configured
DEFAULT_COMMISSION_RATE = float(os.getenv("DEFAULT_COMMISSION_RATE", "20"))
