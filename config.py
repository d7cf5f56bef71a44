"""
Configuration module - settings read from the environment and .env
"""
import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


class Config:
    """Application settings. Subclass and override attributes for tests."""

    APP_ENV = os.getenv("APP_ENV", "development")
    DEBUG = APP_ENV == "development"
    TESTING = False
    PORT = _env_int("PORT", 5001)

    # PostgreSQL (production) when DATABASE_URL is set, SQLite otherwise
    DATABASE_URL = os.getenv("DATABASE_URL") or None
    DB_PATH = os.getenv("DB_PATH", os.path.join(BASE_DIR, "data", "crm.db"))
    DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 10)
    DB_POOL_TIMEOUT = _env_float("DB_POOL_TIMEOUT", 30.0)
    DB_TIMEOUT = _env_float("DB_TIMEOUT", 5.0)
    DB_SSLMODE = os.getenv("DB_SSLMODE") or ("require" if APP_ENV == "production" else None)

    JWT_SECRET = os.getenv("JWT_SECRET", "agp_crm_secret_key_change_in_production")
    JWT_EXPIRES_HOURS = _env_int("JWT_EXPIRES_HOURS", 24)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 10)

    UPLOAD_PATH = os.getenv("UPLOAD_PATH", os.path.join(BASE_DIR, "uploads"))
    MAX_UPLOAD_MB = _env_int("MAX_UPLOAD_MB", 10)

    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@agpcrm.com")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

    FRONTEND_URL = os.getenv("FRONTEND_URL") or None
    RATE_LIMIT = os.getenv("RATE_LIMIT", "100 per 15 minutes")
    RATELIMIT_ENABLED = True

    SMTP_HOST = os.getenv("SMTP_HOST", "")
    SMTP_PORT = _env_int("SMTP_PORT", 587)
    SMTP_USER = os.getenv("SMTP_USER", "")
    SMTP_PASS = os.getenv("SMTP_PASS", "")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "AGP CRM <noreply@agpcrm.com>")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def cors_origins(cls):
        if cls.APP_ENV == "production":
            origins = [
                "https://agpcrm.vercel.app",
                "https://agp-crm.vercel.app",
                "https://agpcrm-frontend.vercel.app",
                cls.FRONTEND_URL,
            ]
            return [origin for origin in origins if origin]
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
