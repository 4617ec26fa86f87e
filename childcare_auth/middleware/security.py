"""
Security middleware for adding security headers to all responses.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import logging

logger = logging.getLogger(__name__)

# JSON API only: nothing may be framed, scripted or embedded
CONTENT_SECURITY_POLICY = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all HTTP responses.
    Protects against common web vulnerabilities.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "X-Permitted-Cross-Domain-Policies": "none",
            "Content-Security-Policy": CONTENT_SECURITY_POLICY,
        }

        # HSTS only means something over HTTPS
        if request.url.scheme == "https":
            security_headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Token responses must never be cached by intermediaries
        if request.url.path.startswith("/auth"):
            security_headers["Cache-Control"] = "no-store"
            security_headers["Pragma"] = "no-cache"

        for header, value in security_headers.items():
            response.headers[header] = value

        logger.debug(f"Applied security headers to {request.method} {request.url.path}")

        return response
