"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from client_portal.api.attachments import get_attachment_storage
from client_portal.core import auth as auth_module
from client_portal.core import deps as deps_module
from client_portal.core.config import settings
from client_portal.db.session import get_db
from client_portal.main import app
from client_portal.models.base import Base
from client_portal.services.payment_gateway import RazorpayGateway, get_payment_gateway


# WHY: SQLite in memory keeps tests free of external services. StaticPool
# shares the single connection so every session sees the same database.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_GATEWAY_KEY_ID = "rzp_test_key"
TEST_GATEWAY_SECRET = "test_gateway_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope gives each test a fresh schema.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway() -> RazorpayGateway:
    """
    Gateway with test credentials.

    Tests that open orders replace create_order/refund with mocks; the
    signature checks run for real against TEST_GATEWAY_SECRET.
    """
    return RazorpayGateway(
        key_id=TEST_GATEWAY_KEY_ID,
        key_secret=TEST_GATEWAY_SECRET,
        webhook_secret=TEST_WEBHOOK_SECRET,
    )


@pytest.fixture
def storage():
    """Stand-in for StorageService; presigning and HEAD are mocked."""
    from unittest.mock import MagicMock

    mock = MagicMock()
    mock.presign_upload.return_value = "https://storage.test/upload?sig=abc"
    mock.presign_download.return_value = "https://storage.test/download?sig=abc"
    mock.object_exists.return_value = True
    return mock


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, gateway: RazorpayGateway, storage
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient with ASGITransport exercises the full middleware and
    exception handler stack without running a server.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_attachment_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_redis_client():
    """
    Reset the global Redis client before each test.

    WHY: The auth module caches a Redis client bound to an event loop
    that does not outlive the test.
    """
    auth_module._redis_client = None
    yield
    auth_module._redis_client = None


@pytest.fixture(autouse=True)
def no_revoked_tokens(monkeypatch):
    """
    Treat every token as not revoked.

    WHY: Revocations live in Redis, which tests do not run. Revocation
    behaviour itself is tested in tests/unit/core/test_auth.py.
    """
    monkeypatch.setattr(deps_module, "is_token_revoked", AsyncMock(return_value=False))


@pytest.fixture(autouse=True)
def disable_rate_limiting(monkeypatch):
    """
    Disable rate limiting for all tests.

    Rate limiting is tested separately in unit tests with mocked Redis.
    """
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
