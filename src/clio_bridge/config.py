"""Configuration for the Clio bridge.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the package can be imported
without any environment at all, which is what CI and the test suite do.

The upstream credential (CLIO_ACCESS_TOKEN) is handed over by the OAuth2
authorization-code handshake, which lives outside this package. When it is
empty the bridge behaves as "not authenticated": new sessions cannot be
created, but sessions already bound to a credential keep working.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (absent in CI and Docker)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

# --- Clio connection ---
CLIO_BASE_URL: str = os.getenv("CLIO_BASE_URL", "https://app.clio.com/api/v4")
CLIO_ACCESS_TOKEN: str = os.getenv("CLIO_ACCESS_TOKEN", "")

# Per-call timeout. A timed-out call is retried like a 5xx.
CLIO_TIMEOUT_SECONDS: float = float(os.getenv("CLIO_TIMEOUT_SECONDS", "30"))

# Retry budget: total attempts per logical call, and the base of the
# exponential backoff schedule (base * 2^attempt).
CLIO_MAX_ATTEMPTS: int = int(os.getenv("CLIO_MAX_ATTEMPTS", "3"))
CLIO_RETRY_BASE_SECONDS: float = float(os.getenv("CLIO_RETRY_BASE_SECONDS", "1.0"))

# Upper bound on cached clients (one per credential). The least recently
# used client is closed once the cache is full.
CLIO_CLIENT_CACHE_SIZE: int = int(os.getenv("CLIO_CLIENT_CACHE_SIZE", "128"))

# --- Sessions ---
SESSION_TTL_DAYS: int = int(os.getenv("SESSION_TTL_DAYS", "30"))
SESSION_REFRESH_THRESHOLD_DAYS: int = int(
    os.getenv("SESSION_REFRESH_THRESHOLD_DAYS", "7")
)
SESSION_SWEEP_INTERVAL_SECONDS: float = float(
    os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "3600")
)

# --- Inbound rate limiting ---
RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = float(
    os.getenv("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "300")
)

# --- Aggregation engines ---
# The matter brief lists calendar entries from this date onward.
CALENDAR_START_DATE: str = os.getenv("CALENDAR_START_DATE", "2024-02-15")

# --- Server ---
# Public URL of this service, used to build the connection URL handed to
# agent clients when a session is created.
APP_URL: str = os.getenv("APP_URL", "http://localhost:8000")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
