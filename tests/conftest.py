import os
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import agenda.models  # noqa: F401
from agenda.api.deps.clock import get_clock
from agenda.core.database import Base, get_db
from agenda.main import app

# Database-backed tests run only against an explicitly configured PostgreSQL
# (scripts/setup_test_db.py creates one)
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

requires_database = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not set"
)


@pytest.fixture
async def db_engine():
    """Create a fresh schema for each test."""
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL is not set")

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)  # Clean slate
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db():
    """Mock database session."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def now():
    """Business wall clock for deterministic tests (a Monday morning)."""
    return datetime(2024, 1, 15, 8, 0, 0)


@pytest.fixture
def fixed_clock(now):
    """Clock returning ``now`` whatever the business timezone."""

    def _clock(timezone_name: str) -> datetime:
        return now

    return _clock


@pytest.fixture
async def client(mock_db, fixed_clock):
    """API client backed by the mock session and the fixed clock."""

    async def _override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


# Import all scheduling fixtures to make them available
pytest_plugins = ["tests.fixtures.scheduling_fixtures"]
