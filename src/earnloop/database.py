"""Async SQLAlchemy engine and session management."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

# SQLite only (local runs and tests); waits for the write lock instead of failing.
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the database write lock up front.

    pysqlite defers BEGIN until the first write, so two transactions can both
    read a balance before either writes it. BEGIN IMMEDIATE serialises them the
    way SELECT ... FOR UPDATE does on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, lock_timeout_ms: int = 800) -> AsyncEngine:
    """Create an engine configured for the ledger's locking discipline."""
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _install_sqlite_locking(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
        connect_args={
            "statement_cache_size": 0,
            "server_settings": {"lock_timeout": str(lock_timeout_ms)},
        },
    )


async def init_db(url: str, lock_timeout_ms: int = 800) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = build_engine(url, lock_timeout_ms)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (used for side-channel writes such as fraud flags)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run one ledger operation as a single transaction.

    Commits when the block exits cleanly and rolls back on any exception, so a
    rejected earn or spend never leaves partial state behind.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
