import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as slothold.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "slothold.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Identity comes from the upstream gateway; we only read the header
    AUTH_USER_HEADER = os.getenv("AUTH_USER_HEADER", "X-User-Id")

    # Hold windows (minutes)
    HOLD_MINUTES = int(os.getenv("HOLD_MINUTES", "15"))
    PAYMENT_HOLD_MINUTES = int(os.getenv("PAYMENT_HOLD_MINUTES", "30"))

    # Hold expiration sweeper
    SWEEPER_ENABLED = _env_bool("SWEEPER_ENABLED", "true")
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))

    # Outbox replay for events that failed to publish after commit
    OUTBOX_REPLAY_ENABLED = _env_bool("OUTBOX_REPLAY_ENABLED", "true")
    OUTBOX_REPLAY_INTERVAL_SECONDS = int(os.getenv("OUTBOX_REPLAY_INTERVAL_SECONDS", "120"))
    OUTBOX_REPLAY_BATCH = int(os.getenv("OUTBOX_REPLAY_BATCH", "100"))

    # Event bus (Redis pub/sub). Unset -> events are only logged.
    REDIS_URL = os.getenv("REDIS_URL")
    EVENT_CHANNEL = os.getenv("EVENT_CHANNEL", "booking-events")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
