from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional
from uuid import UUID
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..entities.refresh_token import RefreshToken
from ..exceptions import ConstraintViolation, PersistenceFailure

logger = logging.getLogger(__name__)


class TokenStore:
    """Persistence for refresh token records.

    Every mutation is one SQL statement. `revoke` in particular is a
    conditional UPDATE whose row count tells the caller whether *it* flipped
    the row; concurrent rotations of the same token rely on that.

    Nothing here commits. Callers group work with `atomic()`.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Commit the enclosed unit of work, or roll all of it back"""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Refresh token transaction failed: {e.__class__.__name__}")
            raise PersistenceFailure() from e
        except Exception:
            self.db.rollback()
            raise

    def create(
        self,
        user_id: UUID,
        token_hash: str,
        expires_at: datetime,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> RefreshToken:
        record = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked=False,
            user_agent=user_agent[:255] if user_agent else None,
            ip_address=ip_address
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError as e:
            if "token_hash" in str(e.orig):
                # Two secrets hashing alike means the random source is broken
                logger.critical(f"Refresh token hash collision for user {user_id}")
            else:
                logger.error(f"Refresh token rejected by the database for user {user_id}: {e.orig}")
            raise ConstraintViolation() from e
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e
        return record

    def find_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        try:
            return self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == token_hash
            ).one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e

    def get(self, record_id: UUID) -> Optional[RefreshToken]:
        try:
            return self.db.get(RefreshToken, record_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e

    def revoke(self, record_id: UUID, now: datetime) -> bool:
        """Revoke one record if it is not revoked yet.

        Returns True only for the call that performed the transition; an
        already revoked record is left untouched and yields False.
        """
        try:
            self.db.flush()
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.id == record_id,
                RefreshToken.revoked.is_(False)
            ).update(
                {"revoked": True, "revoked_at": now, "updated_at": now},
                synchronize_session=False
            )
            self.db.expire_all()
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e
        return updated == 1

    def revoke_all_for_user(self, user_id: UUID, now: datetime) -> int:
        try:
            self.db.flush()
            updated = self.db.query(RefreshToken).filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False)
            ).update(
                {"revoked": True, "revoked_at": now, "updated_at": now},
                synchronize_session=False
            )
            self.db.expire_all()
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e
        return updated

    def purge_expired_before(self, cutoff: datetime) -> int:
        try:
            return self.db.query(RefreshToken).filter(
                RefreshToken.expires_at < cutoff
            ).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e

    def list_active_for_user(self, user_id: UUID, now: datetime) -> list[RefreshToken]:
        """All live (not revoked, not expired) records of a user, newest first"""
        try:
            return self.db.query(RefreshToken).filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now
            ).order_by(RefreshToken.created_at.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceFailure() from e
