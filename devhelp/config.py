# devhelp/config.py
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

def _as_bool(val: str | None, default=False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

class Config:
    # --- Core ---
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    APP_VERSION = os.getenv("APP_VERSION")
    BABEL_DEFAULT_LOCALE = os.getenv("BABEL_DEFAULT_LOCALE", "en")
    BABEL_DEFAULT_TIMEZONE = os.getenv("BABEL_DEFAULT_TIMEZONE", "UTC")

    # DB
    SQLALCHEMY_DATABASE_URI = (
        os.getenv("SQLALCHEMY_DATABASE_URI")
        or os.getenv("DATABASE_URL")
        or "sqlite:///devhelp.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Every store call is bounded: waiting for a pooled connection and, on
    # PostgreSQL, the statement itself.
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "10"))
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000"))

    # --- Marketplace rules ---
    # help_request_matches.proposed_rate is NUMERIC(5,2)
    MAX_PROPOSED_RATE = Decimal(os.getenv("MAX_PROPOSED_RATE", "999.99"))
    DEFAULT_MATCH_SCORE = float(os.getenv("DEFAULT_MATCH_SCORE", "0.8"))

    # --- Developer directory ---
    DIRECTORY_PAGE_SIZE = int(os.getenv("DIRECTORY_PAGE_SIZE", "12"))
    DIRECTORY_MAX_PAGE_SIZE = int(os.getenv("DIRECTORY_MAX_PAGE_SIZE", "50"))

    # --- Realtime ---
    REALTIME_HEARTBEAT_SECONDS = int(os.getenv("REALTIME_HEARTBEAT_SECONDS", "15"))

    # --- Mail ---
    NOTIFY_BY_EMAIL = _as_bool(os.getenv("NOTIFY_BY_EMAIL", "0"))
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _as_bool(os.getenv("MAIL_USE_TLS", "1"))
    MAIL_USE_SSL = _as_bool(os.getenv("MAIL_USE_SSL", "0"))  # don't enable together with TLS
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", MAIL_USERNAME)
    MAIL_SUPPRESS_SEND = _as_bool(os.getenv("MAIL_SUPPRESS_SEND", "0"))

    # --- Logging ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_FILENAME = os.getenv("LOG_FILENAME", "devhelp.log")
    LOG_JSON = _as_bool(os.getenv("LOG_JSON", "0"))

    # --- Sentry ---
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))

    # --- Security cookies (recommended for prod) ---
    SESSION_COOKIE_SECURE = _as_bool(os.getenv("SESSION_COOKIE_SECURE", "1"))
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "noreply@devhelp.test"
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = "DEBUG"
    SENTRY_DSN = ""
    REALTIME_HEARTBEAT_SECONDS = 1
