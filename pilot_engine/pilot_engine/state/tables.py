"""SQLAlchemy 2.0 ORM table definitions for the ClaimPilot state store.

The store is document-shaped: a single ``records`` table holds every record
kind as a JSON payload keyed by ``(kind, record_id)`` and indexed by
``tenant_id`` for per-tenant scans and purges.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, PrimaryKeyConstraint, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Cross-dialect JSON type: uses JSONB on PostgreSQL, falls back to plain JSON
# (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all ClaimPilot tables."""


class RecordTable(Base):
    """One stored document of any :class:`~pilot_engine.state.store.RecordKind`."""

    __tablename__ = "records"

    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    record_id: Mapped[str] = mapped_column(String(256), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        PrimaryKeyConstraint("kind", "record_id"),
        Index("ix_records_tenant_kind", "tenant_id", "kind"),
    )
