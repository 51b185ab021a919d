import os

# Settings are read at import time; make sure the session-token secret is valid.
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_that_is_at_least_32_bytes_long")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wine_api.core import config as app_config
from wine_api.core import database
from wine_api.core.base import Base
from wine_api.core.database import get_db
from wine_api.core.security import TokenService, get_token_service, reset_token_service

# Import models so they register with SQLAlchemy metadata.
from wine_api.models.user import User


TEST_SECRET = os.environ["JWT_SECRET"]


class FakeClock:
    """Settable clock for TokenService / IdentityReconciler."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def naive(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare wall-clock values.
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


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
def session_factory(db_engine):
    # The DB persists across tests with StaticPool; reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests tweak the process-global settings object; restore it after each test.
    """
    keys = [
        "ENABLE_DEV_LOGIN",
        "GOOGLE_CLIENT_ID",
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "JWT_SECRET",
        "ENV",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    reset_token_service()
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        reset_token_service()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2025, 10, 21, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def token_service():
    return get_token_service()


@pytest.fixture()
def make_token_service():
    def _make(secret: str = TEST_SECRET, ttl: timedelta = timedelta(hours=1), **kwargs) -> TokenService:
        return TokenService(secret, ttl, **kwargs)

    return _make


@pytest.fixture()
def make_user(db_session):
    def _make(
        email: str = "ana@example.com",
        display_name: str = "Ana",
        google_id: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            email=email,
            display_name=display_name,
            google_id=google_id,
            avatar_url=avatar_url,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def app(db_session, session_factory, monkeypatch):
    import wine_api.main as main

    fastapi_app = main.app

    # The identity middleware opens its own sessions.
    monkeypatch.setattr(database, "SessionLocal", session_factory)

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(token_service):
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_service.issue(user.id)}"}

    return _headers
