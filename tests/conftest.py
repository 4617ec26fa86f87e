import os

# Settings are read at import time (engine, limiter), so configure first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-that-is-long-enough")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")
os.environ.setdefault("ENVIRONMENT", "staging")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from childcare_auth.database.core import Base, get_db
from childcare_auth.config import get_settings
from childcare_auth.auth.codec import TokenCodec
from childcare_auth.auth.issuer import TokenIssuer
from childcare_auth.auth.revocation import RevocationManager
from childcare_auth.auth.rotation import RotationProtocol
from childcare_auth.auth.service import get_password_hash
from childcare_auth.auth.store import TokenStore

# Import models so they register with SQLAlchemy metadata.
from childcare_auth.entities.user import User, UserRole
from childcare_auth.entities.refresh_token import RefreshToken  # noqa: F401

from helpers import PASSWORD, FakeClock


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests with StaticPool; reset per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def codec():
    return TokenCodec()


@pytest.fixture()
def store(db_session):
    return TokenStore(db_session)


@pytest.fixture()
def issuer(store, codec, settings, clock):
    return TokenIssuer(store, codec, settings.auth, clock=clock)


@pytest.fixture()
def revocation(store, codec, clock):
    return RevocationManager(store, codec, clock=clock)


@pytest.fixture()
def rotation(store, codec, issuer, revocation, clock):
    return RotationProtocol(store, codec, issuer, revocation, clock=clock)


@pytest.fixture()
def users(db_session):
    """
    Two distinct active users (a parent and a teacher) plus one inactive admin.
    """
    parent = User(
        email="parent@example.com",
        first_name="Dilnoza",
        last_name="Karimova",
        password_hash=get_password_hash(PASSWORD),
        role=UserRole.PARENT,
    )
    teacher = User(
        email="teacher@example.com",
        first_name="Aziz",
        last_name="Rahimov",
        password_hash=get_password_hash(PASSWORD),
        role=UserRole.TEACHER,
    )
    inactive = User(
        email="pending-admin@example.com",
        first_name="Malika",
        last_name="Yusupova",
        password_hash=get_password_hash(PASSWORD),
        role=UserRole.ADMIN,
        is_active=False,
    )
    db_session.add_all([parent, teacher, inactive])
    db_session.commit()
    for user in (parent, teacher, inactive):
        db_session.refresh(user)
    return parent, teacher, inactive


@pytest.fixture()
def app(db_session):
    from childcare_auth.main import app as fastapi_app

    def override_get_db():
        yield db_session
    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app, users):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def login(client):
    """Log in through the API; returns (access_token, refresh_secret)."""

    def _login(email="parent@example.com", password=PASSWORD):
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["access_token"], response.cookies.get("refresh_token")

    return _login
