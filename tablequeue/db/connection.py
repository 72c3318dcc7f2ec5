"""
Database connection management.
Handles async SQLAlchemy engine and session factory creation.
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tablequeue.config import get_settings
from tablequeue.db.models import get_jobs_table, metadata

logger = logging.getLogger(__name__)

# Process-wide engine, used by the worker/reaper entry points only
_engine: AsyncEngine | None = None


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    SQLite has no row locks; taking the write lock up front serializes
    concurrent claimers the way SELECT ... FOR UPDATE does on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: str, *, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """
    Create an async database engine.

    Args:
        database_url: Async SQLAlchemy URL (asyncpg or aiosqlite).
        echo: Log emitted SQL.
        **kwargs: Extra arguments for create_async_engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    settings = get_settings()
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout_ms / 1000.0)
        engine = create_async_engine(url, echo=echo, connect_args=connect_args, **kwargs)
        _use_immediate_transactions(engine)
        return engine

    if kwargs.get("poolclass") is not NullPool:
        kwargs.setdefault("pool_size", settings.database_pool_size)
        kwargs.setdefault("max_overflow", settings.database_max_overflow)
    return create_async_engine(url, echo=echo, pool_pre_ping=True, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create the session factory handed to queue instances.

    Args:
        engine: The async engine.

    Returns:
        The async session factory.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine, table_name: str | None = None) -> None:
    """
    Create the jobs table if it does not exist.
    Production deployments use the Alembic migration instead.
    """
    table = get_jobs_table(table_name or get_settings().queue_table_name)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all, tables=[table])


def get_engine() -> AsyncEngine:
    """
    Get or create the process-wide async database engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            echo=settings.log_level == "DEBUG",
        )
    return _engine


async def init_db() -> async_sessionmaker[AsyncSession]:
    """
    Initialize the database connection and session factory.
    Should be called on process startup.
    """
    session_factory = create_session_factory(get_engine())
    logger.info("Database connection initialized")
    return session_factory


async def close_db() -> None:
    """
    Close the database connection.
    Should be called on process shutdown.
    """
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection closed")

