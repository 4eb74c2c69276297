"""Startup validation: catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "learnhub-dev-secret-change-in-prod"


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.DATABASE_URL and "sqlite" not in settings.DATABASE_URL

    # Critical: JWT secret must be changed in production
    if is_prod and settings.JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.critical("JWT_SECRET is still the default! Set a real secret for production.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to *, restrict in production")

    if not settings.ENABLE_ANALYTICS:
        warnings.append("ENABLE_ANALYTICS is not 'true', clickstream tracking disabled")
    elif not settings.CLICKSTREAM_IP_SERVICES:
        warnings.append("CLICKSTREAM_IP_SERVICES is empty, events will be stored without an IP")

    if not 0 <= settings.QUIZ_PASS_SCORE <= 100:
        warnings.append(f"QUIZ_PASS_SCORE={settings.QUIZ_PASS_SCORE} is outside 0-100")

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
