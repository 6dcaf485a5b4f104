"""Pytest configuration and shared fixtures."""

import os
from collections.abc import Generator

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment is prepared first
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-for-hs256"
os.environ["TOKEN_PEPPER"] = "test-pepper"
os.environ["MFA_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["REDIS_ENABLED"] = "false"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["MFA_REQUIRED"] = "true"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app.db.base import Base  # noqa: E402
from app.db.engine import engine  # noqa: E402
from app.db.session import SessionLocal, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.security.rate_limit import InMemoryRateLimitStore, get_rate_limit_store  # noqa: E402
from tests.helpers.seed import create_test_user, enable_two_factor  # noqa: E402


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def client(db: Session, rate_limit_store: InMemoryRateLimitStore) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database and rate limit overrides."""

    def override_get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limit_store] = lambda: rate_limit_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def test_user(db: Session) -> User:
    """Active user with 2FA not set up and not exempt."""
    user = create_test_user(db, email="reader@example.com", username="reader")
    db.commit()
    return user


@pytest.fixture
def exempt_user(db: Session) -> User:
    """Legacy account allowed to log in without 2FA."""
    user = create_test_user(
        db, email="legacy@example.com", username="legacy", two_factor_exempt=True
    )
    db.commit()
    return user


@pytest.fixture
def two_factor_user(db: Session):
    """User with 2FA enabled. Returns (user, totp_secret, backup_codes)."""
    user = create_test_user(db, email="secure@example.com", username="secure")
    secret, backup_codes = enable_two_factor(db, user)
    db.commit()
    return user, secret, backup_codes


@pytest.fixture
def admin_user(db: Session) -> User:
    user = create_test_user(
        db,
        email="admin@example.com",
        username="admin",
        role=UserRole.ADMIN,
        two_factor_exempt=True,
    )
    db.commit()
    return user

