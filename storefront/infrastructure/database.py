"""Database configuration and session management.

Provides the async SQLAlchemy engine and session factory. Both are
created lazily so tests can point the service at their own database.

On SQLite every transaction is opened with ``BEGIN IMMEDIATE``: the
write lock is taken up front and concurrent writers queue behind it
for up to ``sqlite_busy_timeout_seconds``.
"""

from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storefront.infrastructure.config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for models."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(database_url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Create an async engine for the given URL.

    Args:
        database_url: SQLAlchemy async database URL.
        **engine_kwargs: Extra arguments for ``create_async_engine``.

    Returns:
        Configured AsyncEngine.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
            **engine_kwargs,
        )
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        **engine_kwargs,
    )


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Take over transaction control from the sqlite3 driver."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Get the engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.database_url)
        logger.info("Database engine created", backend=_engine.url.get_backend_name())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory singleton.

    Also used as a FastAPI dependency, so tests can override it.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def reset_engine() -> None:
    """Dispose the engine and forget both singletons (for testing and shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet.

    Args:
        engine: Engine to use, defaults to the singleton.
    """
    # Registers the tables on Base.metadata
    from storefront.infrastructure import models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready", tables=sorted(Base.metadata.tables))
