"""App settings: loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))
    APP_ENV = os.getenv("APP_ENV", "development")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///learnhub.db")

    # Auth
    JWT_SECRET = os.getenv("JWT_SECRET", "learnhub-dev-secret-change-in-prod")

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Clickstream tracking. Disabled unless ENABLE_ANALYTICS=true
    ENABLE_ANALYTICS = _flag("ENABLE_ANALYTICS")
    CLICKSTREAM_IP_SERVICES = [
        s.strip() for s in os.getenv(
            "CLICKSTREAM_IP_SERVICES",
            "https://api.ipify.org?format=json,https://ipapi.co/json/,https://httpbin.org/ip",
        ).split(",") if s.strip()
    ]
    CLICKSTREAM_IP_TIMEOUT = float(os.getenv("CLICKSTREAM_IP_TIMEOUT", "3"))
    CLICKSTREAM_UNLOAD_MIN_SECONDS = float(os.getenv("CLICKSTREAM_UNLOAD_MIN_SECONDS", "2"))
    CLICKSTREAM_MAX_ERRORS = int(os.getenv("CLICKSTREAM_MAX_ERRORS", "5"))
    CLICKSTREAM_MAX_TABS = int(os.getenv("CLICKSTREAM_MAX_TABS", "10000"))

    # Quiz pass mark (percent, inclusive)
    QUIZ_PASS_SCORE = int(os.getenv("QUIZ_PASS_SCORE", "70"))

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
