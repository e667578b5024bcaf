"""
Pytest fixtures for the Passkey API test suite.

This module provides:
1. Database fixtures (in-memory SQLite via aiosqlite, or PostgreSQL when
   PASSKEY_API_TEST_DATABASE_URL is set)
2. A fake passkey verifier standing in for py_webauthn
3. Common test data fixtures
"""

import os
import sys
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set environment variables BEFORE any imports that might load settings
os.environ.setdefault("PASSKEY_API_ENVIRONMENT", "testing")
os.environ.setdefault("PASSKEY_API_SECRET_KEY", "test-secret-key-for-testing-must-be-32-chars")
os.environ.setdefault("PASSKEY_API_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PASSKEY_API_REDIS_URL", "redis://localhost:6380/0")
os.environ.setdefault("PASSKEY_API_WEBAUTHN_RP_ID", "example.com")
os.environ.setdefault("PASSKEY_API_WEBAUTHN_RP_NAME", "Example")
os.environ.setdefault(
    "PASSKEY_API_WEBAUTHN_ORIGIN",
    "https://example.com,android:apk-key-hash:test-hash",
)

from passkey_api.models.orm import Base, User  # noqa: E402
from passkey_api.services.webauthn_verifier import (  # noqa: E402
    AuthenticationVerification,
    CounterRegressionFailure,
    RegistrationVerification,
    VerificationFailure,
)

# ==================== CONFIGURATION ====================

TEST_DATABASE_URL = os.getenv("PASSKEY_API_TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


# ==================== DATABASE FIXTURES ====================


@pytest_asyncio.fixture
async def async_engine():
    """Create a fresh schema for each test.

    In-memory SQLite needs a StaticPool so every session sees the same database.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def async_session_factory(async_engine):
    """Create async session factory."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(async_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_context(async_session_factory) -> Callable[[], Any]:
    """Committing session context manager, shaped like core.database.get_db_context."""

    @asynccontextmanager
    async def _context() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _context


# ==================== SETTINGS ====================


@pytest.fixture
def settings():
    """Application settings resolved from the test environment."""
    from passkey_api.config import clear_settings_cache, get_settings

    clear_settings_cache()
    yield get_settings()
    clear_settings_cache()


# ==================== FAKE VERIFIER ====================


class FakeVerifier:
    """
    In-memory PasskeyVerifier.

    Credential responses are plain dicts:
        {"id": <credential id>, "challenge": <token>, "counter": <int>}

    Verification succeeds when the response echoes the expected challenge.
    """

    def __init__(self, reject_counter_regression: bool = True):
        self.reject_counter_regression = reject_counter_regression
        self.fail_with: VerificationFailure | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def extract_credential_id(self, response: dict[str, Any]) -> str | None:
        value = response.get("id")
        return value if isinstance(value, str) and value else None

    def verify_registration(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        require_user_verification: bool,
    ) -> RegistrationVerification:
        self.calls.append(
            (
                "registration",
                {
                    "expected_challenge": expected_challenge,
                    "expected_origins": expected_origins,
                    "expected_rp_id": expected_rp_id,
                    "require_user_verification": require_user_verification,
                },
            )
        )
        if self.fail_with is not None:
            raise self.fail_with
        if response.get("challenge") != expected_challenge:
            raise VerificationFailure("Client data challenge was not expected challenge")

        credential_id = response["id"]
        return RegistrationVerification(
            credential_id=credential_id,
            public_key=response.get("public_key", f"pk-{credential_id}"),
            aaguid=response.get("aaguid"),
        )

    def verify_authentication(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        public_key: str,
        counter: int,
    ) -> AuthenticationVerification:
        self.calls.append(
            (
                "authentication",
                {
                    "expected_challenge": expected_challenge,
                    "public_key": public_key,
                    "counter": counter,
                },
            )
        )
        if self.fail_with is not None:
            raise self.fail_with
        if response.get("challenge") != expected_challenge:
            raise VerificationFailure("Client data challenge was not expected challenge")

        new_counter = response.get("counter", counter + 1)
        if (new_counter != 0 or counter != 0) and new_counter <= counter:
            if self.reject_counter_regression:
                raise CounterRegressionFailure(counter, new_counter)

        return AuthenticationVerification(credential_id=response["id"], new_counter=new_counter)


@pytest.fixture
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def passkey_service(db_session, fake_verifier, settings):
    """PasskeyService wired to the test database and the fake verifier."""
    from passkey_api.services.passkey_service import PasskeyService

    return PasskeyService(db_session, verifier=fake_verifier, settings=settings)


# ==================== MOCK FIXTURES ====================


@pytest.fixture
def mock_redis():
    """Mock Redis connection for unit tests."""
    mock = AsyncMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=True)
    mock.expire = AsyncMock(return_value=True)
    return mock


# ==================== TEST DATA FIXTURES ====================


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    """A persisted user that owns passkeys in tests."""
    user = User(email="test@example.com", name="Test User", email_verified=True)
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """A second user, for ownership checks."""
    user = User(email="other@example.com", name="Other User")
    db_session.add(user)
    await db_session.flush()
    return user


# ==================== MARKERS ====================


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, mocked dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (HTTP through the app)")
    config.addinivalue_line("markers", "slow: Tests that take >1 second")
