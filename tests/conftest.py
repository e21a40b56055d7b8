import asyncio

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from teleflow.main import app
from teleflow.database import Base, get_db
from teleflow.api.deps import get_session_factory, get_change_feed, get_dispatcher, get_workflow_engine
from teleflow.services.campaigns import ChangeFeed, PostPurchaseWorkflowEngine
from teleflow.services.email_service import MockEmailService

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


class RecordingSleep:
    """Stands in for asyncio.sleep: records the requested delay and yields once."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def test_engine():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_email():
    return MockEmailService()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest_asyncio.fixture
async def workflow_engine(session_factory, mock_email, recording_sleep):
    """Started engine on its own feed; stopped (guards cleared) after the test."""
    feed = ChangeFeed()
    engine = PostPurchaseWorkflowEngine(
        session_factory,
        feed,
        mock_email,
        sleep=recording_sleep,
        fallback_delay_seconds=10,
    )
    engine.start()
    yield engine
    await engine.stop()
    await feed.close()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, session_factory, workflow_engine, mock_email):
    """Create test client with overridden database and campaign runtime."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_change_feed] = lambda: workflow_engine.feed
    app.dependency_overrides[get_workflow_engine] = lambda: workflow_engine
    app.dependency_overrides[get_dispatcher] = lambda: mock_email

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
