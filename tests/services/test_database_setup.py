"""Tests for engine options and connectivity checks."""

import pytest

from consultflow.core.config import Settings
from consultflow.db.base import database_reachable, engine_options
from consultflow.db.redis import redis_reachable

pytestmark = pytest.mark.unit


def test_sqlite_writers_wait_for_the_file_lock():
    settings = Settings(db_busy_timeout_seconds=12.5)

    options = engine_options("sqlite+aiosqlite:///consultflow.db", settings)

    assert options["connect_args"] == {"timeout": 12.5}
    assert "pool_size" not in options


def test_server_database_gets_checked_pool():
    settings = Settings(db_pool_size=4, db_max_overflow=2)

    options = engine_options("postgresql+asyncpg://u:p@db/consultflow", settings)

    assert options["pool_pre_ping"] is True
    assert options["pool_size"] == 4
    assert options["max_overflow"] == 2
    assert "connect_args" not in options


async def test_uninitialized_stores_are_unreachable():
    db_ok, db_error = await database_reachable()
    redis_ok, redis_error = await redis_reachable()

    assert db_ok is False
    assert "init_db" in db_error
    assert redis_ok is False
    assert "init_redis" in redis_error


async def test_database_reachable_after_init(engine):
    ok, error = await database_reachable()

    assert ok is True
    assert error is None
