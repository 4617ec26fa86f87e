import uuid
import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import get_settings
from ..exceptions import AuthenticationError
from ..auth.service import verify_token

logger = logging.getLogger("access")


def _user_id_from_bearer(request: Request) -> str | None:
    """Best-effort caller lookup for the access log; never fails the request."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        auth = get_settings().auth
        return verify_token(token, auth.jwt_secret_key, auth.algorithm).user_id
    except AuthenticationError:
        return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing and request IDs for debugging"""

    async def dispatch(self, request: Request, call_next):
        # Generate unique request ID for tracing requests through system
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        user_id = _user_id_from_bearer(request)
        request.state.user_id = user_id

        start_time = time.perf_counter()

        logger.info(
            f"{request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else "unknown",
                "user_id": user_id,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"{request.method} {request.url.path} - Exception",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": e.__class__.__name__,
                    "user_id": user_id,
                },
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
                "user_id": user_id,
            }
        )

        # Add request ID to response headers for debugging
        response.headers["X-Request-ID"] = request_id

        return response
