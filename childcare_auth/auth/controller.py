from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette import status

from . import models
from . import service
from .cookies import clear_refresh_cookie, read_refresh_cookie, set_refresh_cookie
from .issuer import Clock, IssuedTokens
from .revocation import RevokeReason
from ..audit import AuthEventType, extract_request_info, log_auth_event
from ..config import get_settings, Settings
from ..database.core import DbSession
from ..exceptions import InvalidSession, SessionNotFound
from ..rate_limiter import limiter, RATE_LIMITS

router = APIRouter(
    prefix='/auth',
    tags=['auth']
)


def _token_response(issued: IssuedTokens, settings: Settings) -> JSONResponse:
    """Access token in the body, refresh secret only in the HttpOnly cookie."""
    body = models.Token(access_token=issued.access_token, expires_in=issued.expires_in)
    response = JSONResponse(content=body.model_dump())
    set_refresh_cookie(response, issued.refresh_secret, settings)
    return response


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=models.UserResponse)
@limiter.limit(RATE_LIMITS["auth_register"])
async def register_user(request: Request, db: DbSession,
                        register_user_request: models.RegisterUserRequest):
    return service.register_user(db, register_user_request)


@router.post("/login", response_model=models.Token)
@limiter.limit(RATE_LIMITS["auth_login"])
async def login(
    request: Request,
    credentials: models.LoginRequest,
    db: DbSession,
    store: service.Store,
    issuer: service.Issuer,
    settings: Annotated[Settings, Depends(get_settings)]
):
    """Password login. Sets the refresh cookie and returns the access token."""
    info = extract_request_info(request)
    issued = service.login(db, store, issuer, credentials, **info)
    return _token_response(issued, settings)


@router.post("/refresh", response_model=models.Token)
@limiter.limit(RATE_LIMITS["auth_refresh"])
async def refresh_tokens(
    request: Request,
    rotation: service.Rotation,
    settings: Annotated[Settings, Depends(get_settings)]
):
    """Rotate the refresh cookie and mint a new access token."""
    refresh_secret = read_refresh_cookie(request, settings)
    if not refresh_secret:
        raise InvalidSession("No refresh token provided")

    issued = rotation.rotate(refresh_secret, **extract_request_info(request))
    return _token_response(issued, settings)


@router.post("/logout", response_model=models.MessageResponse)
async def logout(
    request: Request,
    revocation: service.Revocation,
    settings: Annotated[Settings, Depends(get_settings)]
):
    """Revoke the session behind the refresh cookie and clear the cookie.

    A store failure propagates as 503; the cookie is only cleared once the
    revoke is confirmed.
    """
    refresh_secret = read_refresh_cookie(request, settings)
    revoked = False
    if refresh_secret:
        revoked = revocation.revoke_presented(refresh_secret)

    log_auth_event(AuthEventType.LOGOUT, details={"revoked": revoked}, **extract_request_info(request))

    response = JSONResponse(content={"message": "Successfully logged out"})
    clear_refresh_cookie(response, settings)
    return response


@router.post("/logout-all", response_model=models.MessageResponse)
async def logout_all(
    request: Request,
    current_user: service.CurrentUser,
    revocation: service.Revocation,
    settings: Annotated[Settings, Depends(get_settings)]
):
    """Sign out everywhere: revoke every session of the caller."""
    user_id = current_user.get_uuid()
    count = revocation.revoke_all_for_user(user_id, reason=RevokeReason.LOGOUT_ALL)
    log_auth_event(AuthEventType.LOGOUT_ALL, user_id=user_id, details={"sessions_revoked": count},
                   **extract_request_info(request))

    response = JSONResponse(content={"message": "Signed out of all sessions", "sessions_revoked": count})
    clear_refresh_cookie(response, settings)
    return response


@router.get("/sessions", response_model=list[models.SessionResponse])
async def list_sessions(current_user: service.CurrentUser, store: service.Store,
                        clock: Annotated[Clock, Depends(service.get_clock)]):
    """Live sessions (one per logged-in device) of the caller."""
    return store.list_active_for_user(current_user.get_uuid(), clock())


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session(
    request: Request,
    session_id: UUID,
    current_user: service.CurrentUser,
    store: service.Store,
    revocation: service.Revocation
):
    """Revoke one of the caller's own sessions (e.g. a lost phone)."""
    record = store.get(session_id)
    if record is None or record.user_id != current_user.get_uuid():
        raise SessionNotFound()
    revocation.revoke_session(session_id)
    log_auth_event(AuthEventType.SESSION_REVOKED, user_id=current_user.get_uuid(),
                   details={"record_id": str(session_id)}, **extract_request_info(request))


@router.get("/me", response_model=models.UserResponse)
async def get_current_user_info(current_user: service.CurrentUser, db: DbSession):
    """Get current user information."""
    return service.get_user(db, current_user.get_uuid())


@router.put("/change-password", response_model=models.MessageResponse)
@limiter.limit(RATE_LIMITS["change_password"])
async def change_password(
    request: Request,
    password_change: models.PasswordChange,
    db: DbSession,
    current_user: service.CurrentUser,
    revocation: service.Revocation,
    settings: Annotated[Settings, Depends(get_settings)]
):
    """Change password. Every session, including this one, is signed out."""
    count = service.change_password(db, revocation, current_user.get_uuid(), password_change)
    response = JSONResponse(content={"message": "Password changed successfully", "sessions_revoked": count})
    clear_refresh_cookie(response, settings)
    return response
