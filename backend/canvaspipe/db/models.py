"""SQLAlchemy 2.0 ORM models for canvaspipe."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class KeyValueEntry(Base):
    """Durable key-value record.

    The application snapshot is stored as a single row; the value is the
    JSON-serialized document and is overwritten on every persist.
    """
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )
