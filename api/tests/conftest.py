"""
Shared test fixtures for the newsletter API tests.

Provides database session management, test clients, users, subscribers and
a recording stand-in for the email client.
"""

import asyncio
import secrets
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from newsletter.auth.api_key import generate_api_key, get_key_prefix
from newsletter.config import settings
from newsletter.database import Base, get_db
from newsletter.errors import DeliveryError
from newsletter.main import app
from newsletter.middleware.rate_limit import reset_limiter
from newsletter.models.subscription import CONFIRMED, PENDING_CONFIRMATION, Subscription
from newsletter.models.user import PUBLISH_SCOPE, APIKey, User, UserRole
from newsletter.services.email_client import get_email_client

# Test database URL (uses separate test database)
TEST_DATABASE_URL = settings.test_database_url

# NullPool so every session gets its own connection; concurrency tests rely on it
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=NullPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# --- Email client stand-in ---


@dataclass(frozen=True)
class SentEmail:
    recipient: str
    subject: str
    html_content: str
    text_content: str


class RecordingEmailClient:
    """Collects sent emails; recipients listed in fail_for raise DeliveryError."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.fail_for: set[str] = set()

    async def send_email(
        self, recipient, subject: str, html_content: str, text_content: str
    ) -> None:
        # Yield so concurrent workers interleave
        await asyncio.sleep(0)
        if str(recipient) in self.fail_for:
            raise DeliveryError(f"Email API returned 500 for {recipient}", recipient=recipient)
        self.sent.append(SentEmail(str(recipient), subject, html_content, text_content))

    async def aclose(self) -> None:
        return None


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Reset rate limiter before each test to ensure test isolation."""
    reset_limiter()
    yield


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create tables before each test function, drop after.
    Provides isolated database state per test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory for components that open their own transactions."""
    return TestSessionLocal


@pytest.fixture
def email_client() -> RecordingEmailClient:
    return RecordingEmailClient()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, email_client: RecordingEmailClient
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client configured for testing.
    Overrides the database and email client dependencies.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_client] = lambda: email_client

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# --- Authentication Helper Fixtures ---


@pytest.fixture
def auth_headers():
    """Factory fixture for creating X-API-Key headers."""

    def _auth_headers(api_key: str) -> dict[str, str]:
        return {"X-API-Key": api_key}

    return _auth_headers


# --- User Fixtures ---


async def _create_user(
    db_session: AsyncSession,
    username: str,
    email: str,
    roles: list[str],
) -> dict[str, Any]:
    """Helper to create a user with roles and API key in the database."""
    user = User(username=username, email=email)
    db_session.add(user)
    await db_session.flush()

    for role in roles:
        db_session.add(UserRole(user_id=user.id, role=role))

    plaintext_key, key_hash = generate_api_key()
    db_session.add(
        APIKey(
            user_id=user.id,
            key_hash=key_hash,
            key_prefix=get_key_prefix(plaintext_key),
            label="Test key",
            scopes=[PUBLISH_SCOPE],
        )
    )

    await db_session.commit()

    return {
        "user_id": user.id,
        "username": user.username,
        "api_key": plaintext_key,
        "roles": roles,
    }


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> dict[str, Any]:
    """Create an administrator allowed to publish."""
    return await _create_user(
        db_session, username="adminuser", email="admin@example.com", roles=["admin"]
    )


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> dict[str, Any]:
    """Create an authenticated user without the admin role."""
    return await _create_user(
        db_session, username="testuser", email="test@example.com", roles=[]
    )


# --- Subscriber Fixtures ---


@pytest.fixture
def create_subscriber(db_session: AsyncSession):
    """Factory fixture inserting a subscription row directly."""

    async def _create_subscriber(
        email: str, name: str = "Subscriber", confirmed: bool = True
    ) -> Subscription:
        subscription = Subscription(
            email=email,
            name=name,
            status=CONFIRMED if confirmed else PENDING_CONFIRMATION,
        )
        db_session.add(subscription)
        await db_session.commit()
        return subscription

    return _create_subscriber


@pytest_asyncio.fixture
async def confirmed_subscribers(create_subscriber) -> list[str]:
    """Three confirmed subscribers."""
    emails = ["ursula@example.com", "bryan@example.com", "dana@example.com"]
    for email in emails:
        await create_subscriber(email)
    return emails


# --- Utility Fixtures ---


@pytest.fixture
def idempotency_key():
    """Generate a unique idempotency key for testing."""

    def _idempotency_key(prefix: str = "test") -> str:
        return f"{prefix}-{secrets.token_hex(16)}"

    return _idempotency_key
