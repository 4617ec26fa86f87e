import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from uuid import UUID
from .logging import get_logger

# Create dedicated audit logger
audit_logger = get_logger("audit")


class AuthEventType:
    """Constants for authentication event types"""
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    REGISTRATION_SUCCESS = "registration_success"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    SESSION_REVOKED = "session_revoked"
    TOKEN_REFRESH_SUCCESS = "token_refresh_success"
    TOKEN_REFRESH_FAILURE = "token_refresh_failure"
    REPLAY_DETECTED = "replay_detected"
    PASSWORD_CHANGE = "password_change"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


# Security events that must page someone, not just land in the trail
ALERT_EVENTS = frozenset({AuthEventType.REPLAY_DETECTED})


def log_auth_event(
    event_type: str,
    user_id: Optional[UUID] = None,
    email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True
):
    """
    Log authentication events with structured data for security monitoring.

    Args:
        event_type: Type of authentication event (use AuthEventType constants)
        user_id: UUID of the user (if available)
        email: Email of the user (if available)
        ip_address: IP address of the request
        user_agent: User agent string from the request
        details: Additional details specific to the event. Never put token
            material here.
        success: Whether the event was successful or not
    """
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "success": success,
        "user_id": str(user_id) if user_id else None,
        "email": email,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "details": details or {}
    }

    # Remove None values for cleaner logs
    event_data = {k: v for k, v in event_data.items() if v is not None}

    # ERROR for alerting events (Sentry picks these up), WARNING for failures
    if event_type in ALERT_EVENTS:
        log_level = logging.ERROR
    elif success:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    audit_logger.log(
        log_level,
        f"AUTH_EVENT: {event_type}",
        extra={
            "audit_event": True,
            "event_data": json.dumps(event_data, default=str)
        }
    )


def extract_request_info(request) -> Dict[str, Optional[str]]:
    """Extract IP address and user agent from request for audit logging"""
    client = getattr(request, "client", None)
    headers = getattr(request, "headers", None)
    return {
        "ip_address": client.host if client else None,
        "user_agent": headers.get("user-agent") if headers is not None else None
    }
