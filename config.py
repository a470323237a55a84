import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as quickcourt.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "quickcourt.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "quickcourt_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    CSRF_ENABLED = True

    # Cancellation policy
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "12"))

    # Slot calendar
    SLOT_RETENTION_DAYS = int(os.getenv("SLOT_RETENTION_DAYS", "30"))
    MAX_GENERATION_DAYS = int(os.getenv("MAX_GENERATION_DAYS", "90"))  # per generate request
    DEFAULT_OPEN_TIME = os.getenv("DEFAULT_OPEN_TIME", "06:00")
    DEFAULT_CLOSE_TIME = os.getenv("DEFAULT_CLOSE_TIME", "22:00")
    DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "60"))

    # Basic app settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DEBUG = False
