"""
Application settings.

All values come from environment variables (a .env file at the project root is
loaded first). Stores read DATA_DIR at call time, so it can be redirected.
"""

import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")

DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", secrets.token_urlsafe(32))
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_DAYS = int(os.getenv("JWT_EXPIRATION_DAYS", 7))
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
INVITE_ONLY = os.getenv("INVITE_ONLY", "false").lower() == "true"
ADMIN_EMAILS = {
    email.strip().lower()
    for email in os.getenv("ADMIN_EMAILS", "").split(",")
    if email.strip()
}

# Mailgun
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY")
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN")
MAILGUN_FROM_EMAIL = os.getenv("MAILGUN_FROM_EMAIL")
if not MAILGUN_FROM_EMAIL and MAILGUN_DOMAIN:
    MAILGUN_FROM_EMAIL = f"noreply@{MAILGUN_DOMAIN}"

# Cron endpoints (disabled while unset)
CRON_SECRET = os.getenv("CRON_SECRET", "")

# External APIs
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY", "")
COINGECKO_RATE_LIMIT_DELAY = float(os.getenv("COINGECKO_RATE_LIMIT_DELAY", 1.2))
MARKET_DATA_CACHE_SECONDS = int(os.getenv("MARKET_DATA_CACHE_SECONDS", 60))
ETHERSCAN_API_KEY = os.getenv("ETHERSCAN_API_KEY", "")

# Background sync
AUTO_SYNC_ENABLED = os.getenv("AUTO_SYNC_ENABLED", "false").lower() == "true"
AUTO_SYNC_INTERVAL_MINUTES = int(os.getenv("AUTO_SYNC_INTERVAL_MINUTES", 15))
ALERT_COOLDOWN_MINUTES = int(os.getenv("ALERT_COOLDOWN_MINUTES", 60))

# CORS
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
] + [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
