from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
import logging

from .audit import AuthEventType, log_auth_event
from .config import get_settings

logger = logging.getLogger(__name__)

# Initialize limiter with remote address as key
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],  # Global default
    storage_uri="memory://",  # In-memory storage (use Redis for production)
    enabled=get_settings().rate_limit_enabled,
)

# Rate limit configurations for the auth endpoints
RATE_LIMITS = {
    "auth_register": "5/hour",           # 5 registration attempts per hour
    "auth_login": "5/minute",            # 5 login attempts per minute
    "auth_refresh": "30/minute",         # Many tabs/devices may rotate at once behind one NAT
    "change_password": "3/minute",       # 3 password changes per minute
}


async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom error handler for rate limit exceeded errors."""
    client_host = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client_host} on {request.url.path}")
    log_auth_event(
        AuthEventType.RATE_LIMIT_EXCEEDED,
        ip_address=client_host,
        details={"path": request.url.path},
        success=False
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Too many requests. Please try again later.",
        },
        headers={
            "Retry-After": "60",  # Suggest retry after 60 seconds
            "X-RateLimit-Limit": str(getattr(exc, 'detail', '')),
        }
    )
