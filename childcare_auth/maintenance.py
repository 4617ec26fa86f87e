"""
Out-of-band sweep of expired refresh tokens.

Revoked and expired rows are kept for a retention window so replays of old
tokens are still recognised; after that they are deleted. Run periodically:

    python -m childcare_auth.maintenance
"""
from datetime import datetime, timedelta
import logging

from .auth.issuer import utcnow
from .auth.store import TokenStore
from .config import get_settings
from .database.core import SessionLocal
from .logging import configure_logging

logger = logging.getLogger(__name__)


def purge_refresh_tokens(store: TokenStore, retention_days: int, now: datetime | None = None) -> int:
    """Delete records whose expiry lies more than `retention_days` in the past"""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    with store.atomic():
        count = store.purge_expired_before(cutoff)
    logger.info(f"Purged {count} refresh token(s) expired before {cutoff.isoformat()}")
    return count


def main() -> int:
    settings = get_settings()
    configure_logging(settings.app.log_level)
    db = SessionLocal()
    try:
        return purge_refresh_tokens(TokenStore(db), settings.auth.refresh_token_retention_days)
    finally:
        db.close()


if __name__ == "__main__":
    main()
