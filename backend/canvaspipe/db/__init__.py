"""
Database module for canvaspipe.

Provides the durable key-value store used for the application snapshot,
backed by an async SQLAlchemy engine with SQLite WAL mode.
"""
from canvaspipe.config import settings
from canvaspipe.db.kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from canvaspipe.db.models import Base, KeyValueEntry


def get_kv_store(database_url: str | None = None) -> SqliteKeyValueStore:
    """Create the configured durable store."""
    return SqliteKeyValueStore(database_url or settings.storage.database_url)


async def init_database(database_url: str | None = None) -> SqliteKeyValueStore:
    """Create the durable store and its schema."""
    store = get_kv_store(database_url)
    await store.init()
    return store


__all__ = [
    "Base",
    "KeyValueEntry",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "get_kv_store",
    "init_database",
]
