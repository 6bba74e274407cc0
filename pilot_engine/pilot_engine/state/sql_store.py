"""SQLAlchemy-backed :class:`~pilot_engine.state.store.RecordStore`.

Each call opens its own session through :func:`get_session`, so every
operation is one committed transaction.  Serialisation of multi-step
read-modify-write sequences is the job of
:class:`~pilot_engine.state.locks.TenantLocks`, not of this class.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from pilot_engine.state.database import get_session
from pilot_engine.state.store import RecordKind, validate_tenant_id
from pilot_engine.state.tables import RecordTable

logger = logging.getLogger(__name__)


def _dialect_insert(session: AsyncSession) -> Any:
    """Return the dialect-specific ``insert`` construct supporting ON CONFLICT."""
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert
    from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

    return _sqlite_insert


class SqlRecordStore:
    """Document store over the ``records`` table.

    Parameters
    ----------
    engine:
        An async engine whose schema has been created with
        :func:`pilot_engine.state.database.create_tables`.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def get(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        async with get_session(self._engine) as session:
            row = await session.get(RecordTable, (kind.value, record_id))
            return dict(row.payload) if row is not None else None

    async def put(self, kind: RecordKind, record_id: str, tenant_id: str, data: dict[str, Any]) -> None:
        validate_tenant_id(tenant_id)
        values = {
            "kind": kind.value,
            "record_id": record_id,
            "tenant_id": tenant_id,
            "payload": data,
            "updated_at": datetime.now(UTC),
        }
        async with get_session(self._engine) as session:
            insert = _dialect_insert(session)
            stmt = insert(RecordTable).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["kind", "record_id"],
                set_={
                    "tenant_id": values["tenant_id"],
                    "payload": values["payload"],
                    "updated_at": values["updated_at"],
                },
            )
            await session.execute(stmt)

    async def get_or_create(
        self,
        kind: RecordKind,
        record_id: str,
        tenant_id: str,
        factory: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        existing = await self.get(kind, record_id)
        if existing is not None:
            return existing

        validate_tenant_id(tenant_id)
        async with get_session(self._engine) as session:
            insert = _dialect_insert(session)
            stmt = insert(RecordTable).values(
                kind=kind.value,
                record_id=record_id,
                tenant_id=tenant_id,
                payload=factory(),
                updated_at=datetime.now(UTC),
            )
            await session.execute(stmt.on_conflict_do_nothing(index_elements=["kind", "record_id"]))

        # Re-read so that a concurrent creator's row wins consistently.
        created = await self.get(kind, record_id)
        if created is None:
            raise RuntimeError(f"get_or_create lost {kind.value}/{record_id} after insert")
        return created

    async def scan(self, kind: RecordKind, tenant_id: str | None = None) -> list[dict[str, Any]]:
        stmt = select(RecordTable.payload).where(RecordTable.kind == kind.value)
        if tenant_id is not None:
            stmt = stmt.where(RecordTable.tenant_id == tenant_id)
        stmt = stmt.order_by(RecordTable.record_id)
        async with get_session(self._engine) as session:
            result = await session.execute(stmt)
            return [dict(payload) for payload in result.scalars().all()]

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        stmt = delete(RecordTable).where(
            RecordTable.kind == kind.value,
            RecordTable.record_id == record_id,
        )
        async with get_session(self._engine) as session:
            result = await session.execute(stmt)
            return (result.rowcount or 0) > 0

    async def delete_tenant(self, kind: RecordKind, tenant_id: str) -> int:
        stmt = delete(RecordTable).where(
            RecordTable.kind == kind.value,
            RecordTable.tenant_id == tenant_id,
        )
        async with get_session(self._engine) as session:
            result = await session.execute(stmt)
            deleted = result.rowcount or 0
        if deleted:
            logger.info("Deleted %d %s record(s) for tenant=%s", deleted, kind.value, tenant_id)
        return deleted
