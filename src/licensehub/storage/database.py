"""SQLite database for licenses, submissions and audit logs."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from licensehub.storage.models import Base

logger = logging.getLogger("licensehub.storage")

# Connection execution option marking a transaction that will write.
IMMEDIATE_OPTION = "licensehub_immediate"

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
        # Let SQLAlchemy own BEGIN so write transactions can take the lock up front.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):  # type: ignore[no-untyped-def]
        # Reads stay deferred so WAL readers never wait on each other.
        if conn.get_execution_options().get(IMMEDIATE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


async def init_db(db_path: str) -> None:
    """Initialize the SQLite database and create tables."""
    global _engine, _session_factory

    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    _engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=False,
    )
    _install_sqlite_hooks(_engine)

    _session_factory = sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)  # type: ignore[call-overload]

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("SQLite database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session() -> AsyncSession:
    """Get a new database session."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory()


@asynccontextmanager
async def write_transaction() -> AsyncIterator[AsyncSession]:
    """Open a session inside a transaction that holds the write lock from the start.

    Check-then-write sequences run under this, so a concurrent writer
    cannot slip in between the check and the insert. Commits on normal
    exit, rolls back on any exception.
    """
    async with get_session() as session:
        async with session.begin():
            await session.connection(execution_options={IMMEDIATE_OPTION: True})
            yield session
