import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as turfslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "turfslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Trusted gateway forwards the authenticated user id in this header
    IDENTITY_HEADER = os.getenv("IDENTITY_HEADER", "X-User-Id")

    # Slot holds: 3 minutes
    SLOT_LOCK_DURATION = int(os.getenv("SLOT_LOCK_DURATION", "180"))

    # Background sweep of expired holds; 0 disables the thread
    LOCK_SWEEP_INTERVAL_SECONDS = int(os.getenv("LOCK_SWEEP_INTERVAL_SECONDS", "60"))

    # Slot generation defaults
    DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "60"))
    DEFAULT_OPEN_TIME = os.getenv("DEFAULT_OPEN_TIME", "06:00")
    DEFAULT_CLOSE_TIME = os.getenv("DEFAULT_CLOSE_TIME", "23:00")
    MAX_GENERATION_DAYS = int(os.getenv("MAX_GENERATION_DAYS", "90"))

    # Booking codes look like SH2506141234
    BOOKING_CODE_PREFIX = os.getenv("BOOKING_CODE_PREFIX", "SH")

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOCK_SWEEP_INTERVAL_SECONDS = 0
