"""Shared test fixtures for all test groups."""

import os

import pytest
from fakeredis import aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from consultflow.core.config import get_settings
from consultflow.db.base import Base, engine_options
from consultflow.services.producers import ProducerFake


def _test_db_url(tmp_path) -> str:
    """TEST_DATABASE_URL wins; otherwise a throwaway SQLite file per test."""
    return os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'consultflow_test.db'}"


@pytest.fixture
def producer_fake():
    """Fresh ProducerFake with happy_path scenario (default)."""
    return ProducerFake(scenario="happy_path")


@pytest.fixture
def producer_fake_failing():
    """ProducerFake with producer_failure scenario."""
    return ProducerFake(scenario="producer_failure")


@pytest.fixture
def producer_fake_partial():
    """ProducerFake with partial scenario."""
    return ProducerFake(scenario="partial")


@pytest.fixture
async def redis_client():
    """Fake Redis client for pub/sub assertions."""
    client = aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def test_db_url(tmp_path) -> str:
    return _test_db_url(tmp_path)


@pytest.fixture
async def engine(test_db_url) -> AsyncEngine:
    """Create the test engine, build tables and set the global session factory.

    Tests using TestClient (api_client) reset the global in their own loop.
    """
    import consultflow.db.base as db_mod
    import consultflow.db.models  # noqa: F401

    engine = create_async_engine(test_db_url, **engine_options(test_db_url, get_settings()))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the pytest-asyncio event loop."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
