import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from .config import get_settings

logger = logging.getLogger(__name__)


def _scrub_cookies(event, hint):
    """Refresh secrets live in cookies; never ship them to Sentry."""
    request = event.get("request") or {}
    if "cookies" in request:
        request["cookies"] = "[Filtered]"
    headers = request.get("headers") or {}
    for name in list(headers):
        if name.lower() in ("cookie", "authorization", "set-cookie"):
            headers[name] = "[Filtered]"
    return event


def init_sentry() -> bool:
    """Initialize Sentry error tracking (production only)

    Replay detection and hash collisions are logged at ERROR/CRITICAL, so the
    logging integration turns them into Sentry events (alerts).
    Returns whether Sentry was initialized.
    """
    settings = get_settings()

    if not settings.sentry_dsn:
        logger.debug("Sentry not configured (SENTRY_DSN not set)")
        return False

    if not settings.is_production:
        logger.debug("Sentry disabled outside production")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            StarletteIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,  # Capture info and above as breadcrumbs
                event_level=logging.ERROR,  # Send errors to Sentry
            ),
        ],
        traces_sample_rate=0.1,  # Sample 10% of transactions
        environment=settings.environment,
        send_default_pii=False,
        before_send=_scrub_cookies,
    )

    logger.info("Sentry initialized successfully with log capture enabled")
    return True
