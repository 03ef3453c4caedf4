"""Async engine and session factory for the snapshot database."""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """Per-connection SQLite settings applied on every connect."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, registering SQLite pragmas when applicable."""
    engine = create_async_engine(database_url, echo=False)
    if database_url.startswith("sqlite"):
        # aiosqlite only exposes connect events on the sync engine
        event.listens_for(engine.sync_engine, "connect")(configure_sqlite_pragmas)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False prevents greenlet errors on attribute access after commit
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )
