from fastapi import HTTPException


class AuthError(HTTPException):
    """Base class for every error this service renders as `{"error", "detail"}`"""
    status_code = 401
    error_code = "not_authenticated"
    default_message = "Could not validate user"

    def __init__(self, message: str | None = None):
        headers = {"WWW-Authenticate": "Bearer"} if self.status_code == 401 else None
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers
        )


class AuthenticationError(AuthError):
    """Bad credentials or a missing/invalid access token"""


class InactiveAccount(AuthError):
    status_code = 403
    error_code = "account_inactive"
    default_message = "Account is not active. Please contact an administrator."


class UserAlreadyExists(AuthError):
    status_code = 409
    error_code = "user_exists"
    default_message = "A user with this email already exists."


class SessionError(AuthError):
    """A refresh attempt was refused; the client must log in again"""


class InvalidSession(SessionError):
    error_code = "invalid_session"
    default_message = "Invalid session"


class SessionExpired(SessionError):
    error_code = "session_expired"
    default_message = "Session expired"


class ReplayDetected(SessionError):
    error_code = "replay_detected"
    default_message = "Refresh token reuse detected; all sessions have been signed out"


class SessionNotFound(AuthError):
    """No session with that id belongs to the caller"""
    status_code = 404
    error_code = "not_found"
    default_message = "Session not found"


class PersistenceFailure(AuthError):
    status_code = 503
    error_code = "persistence_failure"
    default_message = "Session store unavailable"


class ConstraintViolation(AuthError):
    status_code = 500
    error_code = "constraint_violation"
    default_message = "Session store rejected the token record"


class ValidationError(AuthError):
    status_code = 400
    error_code = "invalid_request"
    default_message = "Invalid request"
