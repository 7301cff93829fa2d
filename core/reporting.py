"""
core/reporting.py -- Exception capture for failed remote operations.

Every place that swallows a BackendError to show the user a friendly message
calls capture_exception() first, so the failure still reaches the logs and,
when SENTRY_DSN is configured, the Sentry project.

init_reporting() is called once from the API lifespan. With no DSN, Sentry
stays uninitialised and capture_exception() only logs -- sentry_sdk calls are
no-ops without a client.
"""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from core.config import Settings

logger = logging.getLogger("notekeep.reporting")


def init_reporting(settings: Settings) -> bool:
    """Initialise Sentry if a DSN is configured. Returns True when enabled."""
    if not settings.sentry_dsn:
        logger.info("Error reporting disabled (SENTRY_DSN not set)")
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        # Our own logger.error calls would duplicate capture_exception events.
        integrations=[LoggingIntegration(event_level=None)],
    )
    logger.info("Error reporting enabled (environment=%s)", settings.sentry_environment)
    return True


def capture_exception(exc: BaseException, operation: str, **context: Any) -> None:
    """Log exc and forward it to Sentry tagged with the failing operation.

    context values are attached as Sentry extras; do not pass passwords or tokens.
    """
    logger.error("%s failed: %s", operation, exc, exc_info=exc)
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("operation", operation)
        for key, value in context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)
