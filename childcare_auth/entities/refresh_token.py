from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, timezone
from ..database.core import Base
from .user import utcnow


def as_utc(value: datetime) -> datetime:
    """SQLite hands timezone-aware columns back naive; they are always UTC here."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RefreshToken(Base):
    __tablename__ = 'refresh_tokens'
    __table_args__ = (
        # Family-wide revoke filters on both columns
        Index('ix_refresh_tokens_user_id_revoked', 'user_id', 'revoked'),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)  # Digest only, never the secret
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)  # Absolute, never extended
    revoked = Column(Boolean, nullable=False, default=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    user_agent = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationship
    user = relationship("User", back_populates="refresh_tokens")

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self):
        return f"<RefreshToken(user_id='{self.user_id}', expires_at='{self.expires_at}', revoked={self.revoked})>"
