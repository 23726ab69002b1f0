import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as courtbook.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtbook.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "courtbook_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = 30 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    CSRF_ENABLED = True
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # All day/week math for bookings is anchored to this zone
    BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "Asia/Kuala_Lumpur")

    # Used when a facility has no opening/closing time set
    DEFAULT_OPEN_TIME = "08:00"
    DEFAULT_CLOSE_TIME = "22:00"

    # Booking limits (active bookings per user)
    MAX_BOOKINGS_PER_DAY = int(os.getenv("MAX_BOOKINGS_PER_DAY", "2"))
    MAX_BOOKINGS_PER_WEEK = int(os.getenv("MAX_BOOKINGS_PER_WEEK", "7"))

    # Cancel/reschedule not allowed this close to start
    CHANGE_CUTOFF_MINUTES = int(os.getenv("CHANGE_CUTOFF_MINUTES", "30"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
