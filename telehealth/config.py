"""
Centralised configuration constants and logging setup.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

# ── Database ─────────────────────────────────────────────────────────
DB_URI = os.getenv("DB_URI", "sqlite:///telehealth.db")

# ── Identity provider ────────────────────────────────────────────────
IDP_JWT_SECRET = os.getenv("IDP_JWT_SECRET", "dev-secret-key-change-in-production")
IDP_JWT_ALGORITHM = "HS256"
IDP_JWT_AUDIENCE = os.getenv("IDP_JWT_AUDIENCE") or None
TOKEN_EXPIRY_HOURS = 24

# Placeholder id for the transient user served while the store is down.
FALLBACK_USER_ID = "dev-user"

# ── Consultations ────────────────────────────────────────────────────
DEFAULT_CONSULTATION_FEE = 75
DEFAULT_CONSULTATION_DURATION = "30"
RECENT_NOTES_DAYS = 7

# ── Reminders / records ──────────────────────────────────────────────
DEFAULT_SNOOZE_MINUTES = 15
RECENT_ACTIVITY_LIMIT = 10

# ── Earnings ─────────────────────────────────────────────────────────
TRANSACTIONS_LIMIT = 50
EARNINGS_TREND_MONTHS = 12
DEFAULT_PAYMENT_METHOD = "Credit Card"

# ── Logging ──────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a root handler for the service's module loggers."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
