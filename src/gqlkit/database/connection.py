"""
Database connection management
"""

import os
import threading
from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, settings
from ..logging import get_logger

logger = get_logger(__name__)

# Global shared connection pools
_engine = None
_async_engine = None
_session_local = None
_async_session_local = None
_database_url: str | None = None
_engine_settings: tuple[bool, int, int] | None = None
_initialized = False
_init_lock = threading.Lock()

ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def get_database_url() -> str:
    """Get database URL, checking the environment before settings."""
    return os.getenv("GQLKIT_DATABASE_URL") or settings.database_url


def to_async_url(database_url: str) -> str | None:
    """Map a sync database URL onto its async driver, if one is supported."""
    for prefix, async_prefix in ASYNC_DRIVERS.items():
        if database_url.startswith(prefix):
            return async_prefix + database_url[len(prefix) :]
    if "+asyncpg" in database_url or "+aiosqlite" in database_url:
        return database_url
    return None


def _pool_settings(options: Settings | None) -> tuple[bool, int, int]:
    opts = options or settings
    return (opts.sql_echo, opts.database_pool_size, opts.database_max_overflow)


def _engine_options(database_url: str, pool_settings: tuple[bool, int, int]) -> dict[str, Any]:
    echo, pool_size, max_overflow = pool_settings
    options: dict[str, Any] = {"echo": echo}
    if not database_url.startswith("sqlite"):
        options["pool_size"] = pool_size
        options["max_overflow"] = max_overflow
    return options


def _dispose_engines() -> None:
    if _engine is not None:
        _engine.dispose()
    if _async_engine is not None:
        # Async connections can only be closed from their event loop; drop the pool
        _async_engine.sync_engine.dispose(close=False)


def reset_database():
    """Reset database connections (for tests)."""
    global _engine, _async_engine, _session_local, _async_session_local
    global _database_url, _engine_settings, _initialized
    _dispose_engines()
    _engine = None
    _async_engine = None
    _session_local = None
    _async_session_local = None
    _database_url = None
    _engine_settings = None
    _initialized = False


async def check_database_connection() -> tuple[bool, str | None]:
    """
    Test the database connection and return a helpful error message.

    Returns:
        tuple: (success: bool, error_message: str | None)
    """
    if _async_engine is None:
        return False, "Database engine not initialized"

    try:
        async with _async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True, None
    except Exception as e:
        error_str = str(e)
        if "Connection refused" in error_str or "could not connect" in error_str:
            return False, (
                f"Cannot connect to database server: {error_str}\n"
                f"The database server appears to be down or unreachable."
            )
        if "password authentication failed" in error_str:
            return False, (
                f"Database authentication failed: {error_str}\n"
                f"Please check your database credentials."
            )
        return False, f"Database connection error ({type(e).__name__}): {error_str}"


def _is_current(database_url: str | None, pool_settings: tuple[bool, int, int] | None) -> bool:
    return (
        _initialized
        and database_url in (None, _database_url)
        and pool_settings in (None, _engine_settings)
    )


def init_database(
    database_url: str | None = None,
    force_reinit: bool = False,
    options: Settings | None = None,
):
    """Initialize shared database connection pools.

    Thread-safe. Repeated calls with the same URL and engine options are
    no-ops; a different URL or different ``options`` replaces the pools and
    disposes of the old ones.

    Args:
        database_url: Database URL (defaults to GQLKIT_DATABASE_URL / settings)
        force_reinit: Rebuild the pools even if nothing changed
        options: Settings supplying sql_echo and pool sizes (defaults to ``settings``)
    """
    global _engine, _async_engine, _session_local, _async_session_local
    global _database_url, _engine_settings, _initialized

    requested = _pool_settings(options) if options is not None else None

    if not force_reinit and _is_current(database_url, requested):
        return

    with _init_lock:
        if not force_reinit and _is_current(database_url, requested):
            return

        db_url = database_url or get_database_url()
        sync_url = db_url.replace("+asyncpg", "").replace("+aiosqlite", "")
        pool_settings = requested or _pool_settings(None)

        _dispose_engines()

        _engine = create_engine(sync_url, **_engine_options(sync_url, pool_settings))
        _session_local = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

        async_url = to_async_url(db_url)
        if async_url is not None:
            _async_engine = create_async_engine(
                async_url, **_engine_options(async_url, pool_settings)
            )
            _async_session_local = async_sessionmaker(
                _async_engine,
                class_=AsyncSession,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        else:
            _async_engine = None
            _async_session_local = None
            logger.warning("No async driver for database URL", database_url=db_url)

        _database_url = db_url
        _engine_settings = pool_settings
        _initialized = True
        logger.info("Database initialized", database_url=db_url, echo=pool_settings[0])


def create_tables() -> None:
    """Create all tables for the registered models (development and tests)."""
    from .models import Base

    Base.metadata.create_all(get_engine())
    logger.info("Database tables created", tables=sorted(Base.metadata.tables))


def get_engine():
    """Get the shared SQLAlchemy engine."""
    if _engine is None:
        init_database()
    return _engine


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session (sync) from shared pool."""
    if _session_local is None:
        init_database()

    if _session_local is None:
        raise RuntimeError("Database not initialized")

    session = _session_local()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session (async) from shared pool."""
    if _async_session_local is None:
        init_database()

    if _async_session_local is None:
        raise RuntimeError("Async database not available for this database URL")

    async with _async_session_local() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
