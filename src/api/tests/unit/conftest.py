"""Unit test fixtures.

Store and relay scenario tests run against a throwaway SQLite database
through aiosqlite, so no PostgreSQL instance is required. SQLite ignores
FOR UPDATE SKIP LOCKED and partial index predicates; everything else the
store does behaves the same.
"""

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from infrastructure.database.models import Base

# Register the outbox tables on Base.metadata
import infrastructure.outbox.models  # noqa: F401


@pytest.fixture
def mock_db_settings():
    """Provide test database settings."""
    from infrastructure.settings import DatabaseSettings

    return DatabaseSettings(
        host="testhost",
        port=5432,
        database="testdb",
        username="testuser",
        password="testpass",
    )


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Provide an engine bound to a fresh SQLite file with the outbox schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/outbox.db")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> async_sessionmaker[AsyncSession]:
    """Provide a session factory bound to the SQLite engine."""
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)


@pytest.fixture
def mock_session_factory():
    """Provide a session factory whose sessions and transactions are mocks.

    Returns the factory and the session so tests can inspect both.
    """
    session = AsyncMock()
    session.begin = MagicMock()
    session.begin.return_value.__aenter__ = AsyncMock(return_value=None)
    session.begin.return_value.__aexit__ = AsyncMock(return_value=False)

    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)

    return factory, session
