from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
import logging

from .database.core import engine, Base
from .api import register_routes
from .errors import register_error_handlers
from .logging import configure_logging
from .config import get_settings
from .middleware.logging import RequestLoggingMiddleware
from .middleware.security import SecurityHeadersMiddleware
from .rate_limiter import limiter
from .sentry import init_sentry

# Register entities with the metadata
from .entities.user import User  # noqa: F401
from .entities.refresh_token import RefreshToken  # noqa: F401

settings = get_settings()

configure_logging(settings.app.log_level)
init_sentry()

logger = logging.getLogger(__name__)

app = FastAPI(title="Childcare Auth", version="1.0.0")

app.state.limiter = limiter

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# Configure CORS; credentials are required for the refresh cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

register_error_handlers(app)

# Only create tables in development environment; elsewhere run the migrations
if settings.is_development:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully (development mode)")

register_routes(app)


def run():
    """Serve the app with uvicorn; auto-reload in development"""
    uvicorn.run(
        "childcare_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.app.log_level.lower()
    )


if __name__ == "__main__":
    run()
