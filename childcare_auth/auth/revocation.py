from uuid import UUID
import logging

from .codec import TokenCodec
from .issuer import Clock, utcnow
from .store import TokenStore

logger = logging.getLogger(__name__)


class RevokeReason:
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    PASSWORD_CHANGE = "password_change"
    REPLAY = "replay_detected"
    ADMIN = "admin"


class RevocationManager:
    """Single, presented and account-wide invalidation of refresh tokens.

    Each call commits before returning, so the next rotation attempt sees
    the revocation. A store failure raises PersistenceFailure; a revoke is
    never reported as done unless the commit went through.
    """

    def __init__(self, store: TokenStore, codec: TokenCodec, clock: Clock = utcnow):
        self.store = store
        self.codec = codec
        self.clock = clock

    def revoke_session(self, record_id: UUID) -> bool:
        with self.store.atomic():
            revoked = self.store.revoke(record_id, self.clock())
        logger.info(f"Revoked refresh token {record_id}" if revoked else f"Refresh token {record_id} was already revoked")
        return revoked

    def revoke_presented(self, refresh_secret: str) -> bool:
        """Revoke whatever record the presented secret belongs to (logout)"""
        record = self.store.find_by_hash(self.codec.hash(refresh_secret))
        if record is None:
            return False
        return self.revoke_session(record.id)

    def revoke_all_for_user(self, user_id: UUID, reason: str = RevokeReason.ADMIN) -> int:
        with self.store.atomic():
            count = self.store.revoke_all_for_user(user_id, self.clock())
        logger.info(f"Revoked {count} refresh token(s) for user {user_id} ({reason})")
        return count
