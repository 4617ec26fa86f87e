"""
Database initialization utilities
"""
import logging
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .core import engine, Base
from ..entities.user import User  # noqa: F401
from ..entities.refresh_token import RefreshToken  # noqa: F401

logger = logging.getLogger(__name__)


def init_database(bind=engine) -> bool:
    """
    Create the users and refresh_tokens tables.
    Local shortcut for 'alembic upgrade head'.
    """
    try:
        Base.metadata.create_all(bind=bind)
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        return False
    logger.info(f"Database initialized; tables: {', '.join(sorted(Base.metadata.tables))}")
    return True


def check_database_connection(bind=engine) -> bool:
    """Check if database connection is working"""
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if check_database_connection():
        init_database()
    else:
        logger.error("Please check your database connection and try again.")
