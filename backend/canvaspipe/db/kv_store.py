"""Durable key-value stores.

Both implementations expose the same async ``get``/``set`` pair; the
application only ever uses one fixed key for its whole snapshot.
"""

import copy
import logging
from typing import Any, Optional, Protocol

from sqlalchemy import select

from canvaspipe.db.engine import create_engine, create_session_factory
from canvaspipe.db.models import Base, KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemoryKeyValueStore:
    """Process-local store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class SqliteKeyValueStore:
    """SQLAlchemy-backed store (SQLite WAL via aiosqlite by default)."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = create_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self._initialized = False

    async def init(self) -> None:
        """Create the schema on first use (idempotent)."""
        if self._initialized:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True
        logger.info("Key-value store ready at %s", self.database_url)

    async def get(self, key: str) -> Optional[Any]:
        await self.init()
        async with self.session_factory() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: Any) -> None:
        await self.init()
        async with self.session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def close(self) -> None:
        """Dispose of engine and close all connections."""
        await self.engine.dispose()
