"""PostgreSQL fixtures for integration tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import schedwf.store.models  # noqa: F401
from schedwf.db import Base, create_session_factory, resolve_database_url

pytestmark = pytest.mark.requires_postgres


@pytest.fixture
async def db_engine(db_url: str) -> AsyncIterator[AsyncEngine]:
    # NullPool avoids reusing asyncpg connections across event loops.
    engine = create_async_engine(resolve_database_url(db_url), poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)
