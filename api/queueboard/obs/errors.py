"""Sentry wiring for unhandled errors."""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk

logger = logging.getLogger("obs")


def init_sentry(
    dsn: Optional[str] = None, env: Optional[str] = None, sample_rate: float = 1.0
) -> bool:
    """Start the Sentry client; returns False when no DSN is configured."""
    if not dsn:
        logger.info("error sink disabled: no ERROR_DSN configured")
        return False
    sentry_sdk.init(dsn=dsn, environment=env, sample_rate=sample_rate, send_default_pii=False)
    return True


def capture_exception(exc: Exception) -> Optional[str]:
    """Report ``exc`` and return the Sentry event id, or log it locally."""
    if sentry_sdk.get_client().is_active():
        return sentry_sdk.capture_exception(exc)
    logger.error("unhandled exception", exc_info=exc)
    return None
