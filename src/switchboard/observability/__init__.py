"""Observability module for Sentry integration."""

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from switchboard.config import SentryConfig

logger = logging.getLogger(__name__)

# Check availability
try:
    import sentry_sdk
    from sentry_sdk.integrations.asyncio import AsyncioIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False


def scrub_event(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """Redact secrets from the log message carried by a Sentry event."""
    from switchboard.logging import SecretRedactor

    logentry = event.get("logentry")
    if isinstance(logentry, dict):
        redactor = SecretRedactor()
        for key in ("message", "formatted"):
            if isinstance(logentry.get(key), str):
                logentry[key] = redactor.redact(logentry[key])
    return event


def init_sentry(config: "SentryConfig | None") -> bool:
    """Initialize Sentry if installed and configured.

    Handler failures are logged at ERROR with a traceback, so they become
    Sentry events; everything at INFO and above is kept as breadcrumbs.

    Returns:
        True if Sentry was initialized, False otherwise.
    """
    if not SENTRY_AVAILABLE:
        logger.debug("Sentry SDK not installed, skipping initialization")
        return False

    if config is None or not config.dsn:
        logger.debug("Sentry DSN not configured, skipping initialization")
        return False

    sentry_sdk.init(
        dsn=config.dsn.get_secret_value(),
        environment=config.environment,
        release=config.release,
        traces_sample_rate=config.traces_sample_rate,
        send_default_pii=config.send_default_pii,
        debug=config.debug,
        before_send=scrub_event,
        integrations=[
            AsyncioIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
    )

    logger.info("sentry_initialized", extra={"environment": config.environment})
    return True
