"""Root conftest for API, repository and activity tests.

Provides:
- In-memory SQLite database (replaces production engine)
- FastAPI AsyncClient with mocked Temporal
"""

from __future__ import annotations

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import app.database as db_module
from app.database import Base

# Import all ORM models so they register with Base.metadata
import app.models.db  # noqa: F401


# ---------------------------------------------------------------------------
# In-memory async SQLite engine (StaticPool shares one connection)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite engine per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Per-test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def patched_db(test_engine: AsyncEngine, session_factory):
    """Point app.database at the test engine so get_session()/get_session_ctx() use it."""
    original_engine = db_module.engine
    original_factory = db_module.async_session_factory
    db_module.engine = test_engine
    db_module.async_session_factory = session_factory
    try:
        yield session_factory
    finally:
        db_module.engine = original_engine
        db_module.async_session_factory = original_factory


# ---------------------------------------------------------------------------
# Temporal mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_temporal_client():
    """Mock Temporal client: start_workflow returns a handle, signals succeed."""
    client = AsyncMock()
    client.start_workflow = AsyncMock(
        return_value=MagicMock(id="generic-workflow-test", first_execution_run_id="test-run-id")
    )
    handle = MagicMock()
    handle.signal = AsyncMock()
    client.get_workflow_handle = MagicMock(return_value=handle)
    return client


# ---------------------------------------------------------------------------
# FastAPI test client: patches DB engine + Temporal at module level
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(patched_db, mock_temporal_client) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI routes against the test DB."""
    with patch("app.temporal_adapter.get_client", AsyncMock(return_value=mock_temporal_client)):
        from app.main import app

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

