from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID, uuid4
import jwt

from ..config import AuthSettings
from .codec import TokenCodec
from .store import TokenStore

ACCESS_TOKEN_TYPE = "access"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedTokens:
    """A freshly minted pair. `refresh_secret` exists only in this object."""
    access_token: str
    refresh_secret: str
    refresh_record_id: UUID
    expires_in: int
    refresh_expires_at: datetime


class TokenIssuer:
    """Mints access tokens (self-contained JWTs) and persisted refresh tokens."""

    def __init__(
        self,
        store: TokenStore,
        codec: TokenCodec,
        settings: AuthSettings,
        clock: Clock = utcnow
    ):
        self.store = store
        self.codec = codec
        self.settings = settings
        self.clock = clock

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    def create_access_token(self, user_id: UUID, email: Optional[str] = None, role: Optional[str] = None) -> str:
        """Short-lived access token, verifiable without a store lookup"""
        now = self.clock()
        encode = {
            'sub': str(user_id),
            'type': ACCESS_TOKEN_TYPE,
            'iat': now,
            'exp': now + self.access_token_ttl,
            'jti': str(uuid4())
        }
        if email:
            encode['email'] = email
        if role:
            encode['role'] = role
        return jwt.encode(encode, self.settings.jwt_secret_key, algorithm=self.settings.algorithm)

    def issue(
        self,
        user_id: UUID,
        email: Optional[str] = None,
        role: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> IssuedTokens:
        """
        Create an access token and a new refresh token record.

        The refresh TTL is policy, never inherited from a previous record, so
        a rotated session ends when its own record says so. The caller owns
        the transaction; nothing is committed here.
        """
        access_token = self.create_access_token(user_id, email=email, role=role)

        refresh_secret = self.codec.generate_secret()
        expires_at = self.clock() + self.refresh_token_ttl
        record = self.store.create(
            user_id=user_id,
            token_hash=self.codec.hash(refresh_secret),
            expires_at=expires_at,
            user_agent=user_agent,
            ip_address=ip_address
        )

        return IssuedTokens(
            access_token=access_token,
            refresh_secret=refresh_secret,
            refresh_record_id=record.id,
            expires_in=int(self.access_token_ttl.total_seconds()),
            refresh_expires_at=expires_at
        )
