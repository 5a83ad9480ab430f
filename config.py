import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as salonpay.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "salonpay.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "salonpay_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Payment gateway (REST API, basic auth with key id/secret)
    GATEWAY_KEY_ID = os.getenv("GATEWAY_KEY_ID")
    GATEWAY_KEY_SECRET = os.getenv("GATEWAY_KEY_SECRET")
    # webhook secret is configured separately on the gateway dashboard;
    # falls back to the API secret when not set
    GATEWAY_WEBHOOK_SECRET = os.getenv("GATEWAY_WEBHOOK_SECRET") or os.getenv("GATEWAY_KEY_SECRET")
    GATEWAY_BASE_URL = os.getenv("GATEWAY_BASE_URL", "https://api.razorpay.com/v1")
    GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "15"))

    # Commission charged on the service price of every captured booking
    PLATFORM_FEE_PERCENTAGE = int(os.getenv("PLATFORM_FEE_PERCENTAGE", "8"))
    DEFAULT_CURRENCY = "INR"
    REFUND_ESTIMATED_DAYS = "5-7 business days"

    # Shared token the external cron dispatcher sends to /payouts/run
    PAYOUT_CRON_TOKEN = os.getenv("PAYOUT_CRON_TOKEN")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Push notification relay (skipped when unset)
    PUSH_NOTIFY_URL = os.getenv("PUSH_NOTIFY_URL")
    PUSH_NOTIFY_TOKEN = os.getenv("PUSH_NOTIFY_TOKEN")

    DEBUG = False


class TestConfig(Config):
    TESTING = True
    CREATE_TABLES_ON_STARTUP = True
    BCRYPT_ROUNDS = 4
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    GATEWAY_KEY_ID = "rzp_test_key"
    GATEWAY_KEY_SECRET = "test_key_secret"
    GATEWAY_WEBHOOK_SECRET = "test_webhook_secret"
    GATEWAY_BASE_URL = "https://gateway.test/v1"
    PAYOUT_CRON_TOKEN = "cron-test-token"
    SMTP_HOST = None
    PUSH_NOTIFY_URL = None
