from typing import Annotated
from uuid import UUID
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
import jwt
from jwt import PyJWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..audit import AuthEventType, log_auth_event
from ..config import get_settings, Settings
from ..database.core import DbSession
from ..entities.user import User
from ..exceptions import (
    AuthenticationError,
    InactiveAccount,
    PersistenceFailure,
    UserAlreadyExists,
    ValidationError,
)
from . import models
from .codec import TokenCodec
from .issuer import ACCESS_TOKEN_TYPE, Clock, IssuedTokens, TokenIssuer, utcnow
from .revocation import RevocationManager, RevokeReason
from .rotation import RotationProtocol
from .store import TokenStore

logger = logging.getLogger(__name__)

bcrypt_context = CryptContext(schemes=['bcrypt'], deprecated='auto')

bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return bcrypt_context.hash(password)


# -------------------------
# Session core wiring
# -------------------------
def get_clock() -> Clock:
    return utcnow


def get_token_store(db: DbSession) -> TokenStore:
    return TokenStore(db)


def get_token_codec(settings: Annotated[Settings, Depends(get_settings)]) -> TokenCodec:
    return TokenCodec(pepper=settings.auth.refresh_token_pepper)


def get_token_issuer(
    store: Annotated[TokenStore, Depends(get_token_store)],
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)]
) -> TokenIssuer:
    return TokenIssuer(store, codec, settings.auth, clock=clock)


def get_revocation_manager(
    store: Annotated[TokenStore, Depends(get_token_store)],
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
    clock: Annotated[Clock, Depends(get_clock)]
) -> RevocationManager:
    return RevocationManager(store, codec, clock=clock)


def get_rotation_protocol(
    store: Annotated[TokenStore, Depends(get_token_store)],
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
    revocation: Annotated[RevocationManager, Depends(get_revocation_manager)],
    clock: Annotated[Clock, Depends(get_clock)]
) -> RotationProtocol:
    return RotationProtocol(store, codec, issuer, revocation, clock=clock)


Store = Annotated[TokenStore, Depends(get_token_store)]
Issuer = Annotated[TokenIssuer, Depends(get_token_issuer)]
Revocation = Annotated[RevocationManager, Depends(get_revocation_manager)]
Rotation = Annotated[RotationProtocol, Depends(get_rotation_protocol)]


# -------------------------
# Access tokens
# -------------------------
def verify_token(token: str, secret_key: str, algorithm: str) -> models.TokenData:
    """Verify access token (stateless)."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except PyJWTError as e:
        logger.info(f"Access token rejected: {e.__class__.__name__}")
        raise AuthenticationError("Invalid or expired access token")

    if payload.get('type') != ACCESS_TOKEN_TYPE:
        raise AuthenticationError("Invalid token type")

    user_id = payload.get('sub')
    if not user_id:
        raise AuthenticationError("Invalid token")

    return models.TokenData(user_id=user_id, email=payload.get('email'), role=payload.get('role'))


def get_current_user_from_bearer(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[Settings, Depends(get_settings)]
) -> models.TokenData:
    """Resolve the caller from `Authorization: Bearer <access token>`."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No access token provided")
    auth = settings.auth
    return verify_token(credentials.credentials, auth.jwt_secret_key, auth.algorithm)


CurrentUser = Annotated[models.TokenData, Depends(get_current_user_from_bearer)]


# -------------------------
# Accounts
# -------------------------
def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate_user(email: str, password: str, db: Session) -> User | None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning(f"Failed authentication attempt for email: {normalize_email(email)[:3]}***")
        return None
    return user


def register_user(db: Session, register_user_request: models.RegisterUserRequest) -> User:
    """Create a password account; emails are unique case-insensitively."""
    email = normalize_email(register_user_request.email)
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise UserAlreadyExists()
    user = User(
        email=email,
        first_name=register_user_request.first_name,
        last_name=register_user_request.last_name,
        password_hash=get_password_hash(register_user_request.password)
    )
    try:
        db.add(user)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()  # Rollback on error to prevent partial data
        logger.error(f"Failed to register user {email[:3]}***: {e.__class__.__name__}")
        raise PersistenceFailure() from e
    db.refresh(user)
    log_auth_event(AuthEventType.REGISTRATION_SUCCESS, user_id=user.id)
    return user


def login(
    db: Session,
    store: TokenStore,
    issuer: TokenIssuer,
    credentials: models.LoginRequest,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> IssuedTokens:
    user = authenticate_user(credentials.email, credentials.password, db)
    if not user:
        log_auth_event(
            AuthEventType.LOGIN_FAILURE,
            ip_address=ip_address,
            user_agent=user_agent,
            success=False
        )
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        log_auth_event(
            AuthEventType.LOGIN_FAILURE,
            user_id=user.id,
            ip_address=ip_address,
            details={"reason": "inactive"},
            success=False
        )
        raise InactiveAccount()

    with store.atomic():
        issued = issuer.issue(
            user.id,
            email=user.email,
            role=user.role,
            user_agent=user_agent,
            ip_address=ip_address
        )

    log_auth_event(AuthEventType.LOGIN_SUCCESS, user_id=user.id, ip_address=ip_address, user_agent=user_agent)
    return issued


def get_user(db: Session, user_id: UUID | None) -> User:
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    if not user:
        raise AuthenticationError("User not found")
    return user


def change_password(
    db: Session,
    revocation: RevocationManager,
    user_id: UUID,
    password_change: models.PasswordChange
) -> int:
    """Change the password and sign the account out everywhere.

    Returns how many sessions were revoked.
    """
    user = get_user(db, user_id)

    if not verify_password(password_change.current_password, user.password_hash):
        raise ValidationError("Invalid current password")

    if password_change.new_password != password_change.new_password_confirm:
        raise ValidationError("New passwords do not match")

    user.password_hash = get_password_hash(password_change.new_password)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure() from e

    count = revocation.revoke_all_for_user(user_id, reason=RevokeReason.PASSWORD_CHANGE)
    log_auth_event(AuthEventType.PASSWORD_CHANGE, user_id=user_id, details={"sessions_revoked": count})
    return count
