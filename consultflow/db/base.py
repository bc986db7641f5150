"""Declarative base, async engine and session factory for consultation state."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from consultflow.core.config import Settings, get_settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(db_url: str, settings: Settings) -> dict[str, Any]:
    """Engine keyword arguments for ``db_url``.

    SQLite writers wait up to ``db_busy_timeout_seconds`` for the file lock.
    Server databases get a pre-pinged connection pool.
    """
    options: dict[str, Any] = {"echo": settings.debug}
    if db_url.startswith("sqlite"):
        options["connect_args"] = {"timeout": settings.db_busy_timeout_seconds}
    else:
        options["pool_pre_ping"] = True
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


async def init_db(url: str | None = None) -> None:
    """Create the engine and session factory, then the consultation tables."""
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, **engine_options(db_url, settings))
    # Rows outlive their session: services return records after commit
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    import consultflow.db.models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Raises RuntimeError if init_db() has not been called."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def database_reachable() -> tuple[bool, str | None]:
    """Round-trip ``SELECT 1``. Returns (ok, error)."""
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (RuntimeError, SQLAlchemyError, OSError) as exc:
        return False, str(exc)
    return True, None
