"""Shared pytest fixtures for API, database, and cache tests.

Tests run against a SQLite file database (aiosqlite) unless TEST_DATABASE_URL
points somewhere else, and against an AsyncMock standing in for Redis.
"""

import logging
import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, Mock

os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'sharelinks-test-{os.getpid()}.db')}",
)
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import redis.asyncio as redis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from sharelinks.config import get_settings  # noqa: E402
from sharelinks.database import Base, engine_options, get_db  # noqa: E402
from sharelinks.dependencies import get_service_manager  # noqa: E402
from sharelinks.kafka import EventProducer  # noqa: E402
from sharelinks.main import app  # noqa: E402

settings = get_settings()


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(settings.DATABASE_URL, echo=False, **engine_options(settings.DATABASE_URL))
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Redis stand-in: every GET misses, every write succeeds."""
    redis_client = AsyncMock(spec=redis.Redis)
    redis_client.get = AsyncMock(return_value=None)
    redis_client.set = AsyncMock(return_value=True)
    redis_client.setex = AsyncMock(return_value=True)
    redis_client.delete = AsyncMock(return_value=1)
    redis_client.xadd = AsyncMock(return_value="1-0")
    redis_client.ping = AsyncMock(return_value=True)
    return redis_client


@pytest.fixture
def mock_events() -> AsyncMock:
    """Kafka producer stand-in with no broker: every publish reports False."""
    events = AsyncMock(spec=EventProducer)
    events.available = False
    events.publish_click = AsyncMock(return_value=False)
    events.publish_track = AsyncMock(return_value=False)
    return events


@pytest.fixture
def service_manager(mock_redis: AsyncMock, mock_events: AsyncMock) -> Mock:
    manager = Mock()
    manager.settings = settings
    manager.logger = logging.getLogger("sharelinks.tests")
    manager.cache_writer = mock_redis
    manager.cache_reader = mock_redis
    manager.events = mock_events
    return manager


@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    service_manager: Mock,
) -> AsyncGenerator[AsyncClient, None]:
    # A fresh session per request, as in production; concurrent requests must not share one.
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_service_manager() -> Mock:
        return service_manager

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make_token(sub: str = "user-1", role: str = "user", **claims) -> str:
        payload = {"sub": sub, "role": role, **claims}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    return _make_token


@pytest.fixture
def user_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub='admin-1', role='admin')}"}
