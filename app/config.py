import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"

# Business timezone - every opening-hours and day-of-week rule is evaluated here
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Sao_Paulo")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Admin back-office session uses its own secret when it is long enough
ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET")
if not ADMIN_SESSION_SECRET or len(ADMIN_SESSION_SECRET) < 32:
    ADMIN_SESSION_SECRET = SECRET_KEY
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Session lifetime (seconds) for customer and admin cookies - 7 days
SESSION_DURATION_SECONDS = int(os.getenv("SESSION_DURATION_SECONDS", str(7 * 24 * 60 * 60)))
MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
LOCKOUT_DURATION_MINUTES = int(os.getenv("LOCKOUT_DURATION_MINUTES", "30"))

# Frontend base URL for redirects and email links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Asaas payment gateway
ASAAS_API_KEY = os.getenv("ASAAS_API_KEY")
# "sandbox" or "production" - default to sandbox for safety
ASAAS_ENVIRONMENT = os.getenv("ASAAS_ENVIRONMENT", "sandbox")
ASAAS_WEBHOOK_TOKEN = os.getenv("ASAAS_WEBHOOK_TOKEN")
# Mock mode is forced when no API key is configured
ASAAS_MOCK_MODE = os.getenv("ASAAS_MOCK_MODE", "false").lower() == "true" or not ASAAS_API_KEY
ASAAS_TIMEOUT_SECONDS = float(os.getenv("ASAAS_TIMEOUT_SECONDS", "15"))

# Minimum charge per billing type (cents)
MIN_PAYMENT_PIX_CENTS = int(os.getenv("MIN_PAYMENT_PIX_CENTS", "100"))
MIN_PAYMENT_CARD_CENTS = int(os.getenv("MIN_PAYMENT_CARD_CENTS", "500"))
MIN_PAYMENT_BOLETO_CENTS = int(os.getenv("MIN_PAYMENT_BOLETO_CENTS", "500"))

# Unpaid bookings are released after this many hours
PENDING_BOOKING_EXPIRATION_HOURS = int(os.getenv("PENDING_BOOKING_EXPIRATION_HOURS", "24"))

# Coupons
COUPONS_ENABLED = os.getenv("COUPONS_ENABLED", "true").lower() == "true"
# Sessions allowed to use development coupons (comma separated)
DEV_COUPON_ADMIN_EMAILS = [
    e.strip().lower() for e in os.getenv("DEV_COUPON_ADMIN_EMAILS", ADMIN_EMAIL).split(",") if e.strip()
]

# Cron endpoint shared secret (Authorization: Bearer <CRON_SECRET>)
CRON_SECRET = os.getenv("CRON_SECRET")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Reservas <reservas@example.com>")
# Operational inbox for refund requests and admin notices
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL", ADMIN_EMAIL)
