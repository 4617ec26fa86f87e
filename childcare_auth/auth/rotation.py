from enum import Enum
from datetime import datetime
from typing import Optional
import logging

from ..audit import AuthEventType, log_auth_event
from ..entities.refresh_token import RefreshToken
from ..exceptions import InvalidSession, ReplayDetected, SessionExpired
from .codec import TokenCodec
from .issuer import Clock, IssuedTokens, TokenIssuer, utcnow
from .revocation import RevocationManager, RevokeReason
from .store import TokenStore

logger = logging.getLogger(__name__)


class RefreshTokenState(str, Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    VALID = "valid"


class RotationProtocol:
    """Exchanges a refresh secret for a new token pair.

    Decision table, evaluated in order:

        not found            -> InvalidSession
        revoked              -> ReplayDetected, every session of the user revoked
        expired              -> SessionExpired
        valid                -> revoke it and issue a replacement, one transaction

    A valid record whose conditional revoke does not take effect was
    rotated by a concurrent caller between our read and our write; that is
    handled exactly like a revoked record.
    """

    def __init__(
        self,
        store: TokenStore,
        codec: TokenCodec,
        issuer: TokenIssuer,
        revocation: RevocationManager,
        clock: Clock = utcnow
    ):
        self.store = store
        self.codec = codec
        self.issuer = issuer
        self.revocation = revocation
        self.clock = clock

    @staticmethod
    def classify(record: Optional[RefreshToken], now: datetime) -> RefreshTokenState:
        if record is None:
            return RefreshTokenState.NOT_FOUND
        if record.revoked:
            return RefreshTokenState.REVOKED
        if record.is_expired(now):
            return RefreshTokenState.EXPIRED
        return RefreshTokenState.VALID

    def rotate(
        self,
        refresh_secret: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> IssuedTokens:
        now = self.clock()
        record = self.store.find_by_hash(self.codec.hash(refresh_secret))
        state = self.classify(record, now)

        if state is RefreshTokenState.NOT_FOUND:
            self._refused(state, None, ip_address, user_agent)
            raise InvalidSession()

        user_id = record.user_id

        if state is RefreshTokenState.REVOKED:
            self._burn_family(record, ip_address, user_agent)
            raise ReplayDetected()

        if state is RefreshTokenState.EXPIRED:
            self._refused(state, user_id, ip_address, user_agent)
            raise SessionExpired()

        user = record.user
        issued = None
        with self.store.atomic():
            if self.store.revoke(record.id, now):
                issued = self.issuer.issue(
                    user_id,
                    email=user.email if user else None,
                    role=user.role if user else None,
                    user_agent=user_agent,
                    ip_address=ip_address
                )

        if issued is None:
            # Lost the race on the conditional revoke
            self._burn_family(record, ip_address, user_agent)
            raise ReplayDetected()

        log_auth_event(
            AuthEventType.TOKEN_REFRESH_SUCCESS,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent
        )
        return issued

    def _burn_family(self, record: RefreshToken, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        user_id = record.user_id
        record_id = record.id
        count = self.revocation.revoke_all_for_user(user_id, reason=RevokeReason.REPLAY)
        log_auth_event(
            AuthEventType.REPLAY_DETECTED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"record_id": str(record_id), "sessions_revoked": count},
            success=False
        )

    def _refused(self, state: RefreshTokenState, user_id, ip_address, user_agent) -> None:
        log_auth_event(
            AuthEventType.TOKEN_REFRESH_FAILURE,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"reason": state.value},
            success=False
        )
