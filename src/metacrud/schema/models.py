"""SQLAlchemy ORM model for stored records.

Every collection shares one table. A record's field values live in a single
JSON column (JSONB on PostgreSQL), the way a document store keeps them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Dialect-aware JSON type: JSONB on PostgreSQL, JSON on SQLite
JSONType = JSONB().with_variant(JSON(), "sqlite")


def generate_id() -> str:
    """Generate a new record id."""
    return uuid4().hex


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all metacrud models."""

    pass


class Record(Base):
    """One record of one collection."""

    __tablename__ = "mc_records"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    collection: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("ix_mc_records_collection", "collection"),)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary: field values plus the record id."""
        result: dict[str, Any] = dict(self.data or {})
        result["id"] = self.id
        return result
