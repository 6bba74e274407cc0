"""Record store abstraction and its in-memory implementation.

Every durable record (tenant, trial, subscription, usage, case, payment
batch) is stored as a JSON-compatible document addressed by
``(kind, record_id)`` and tagged with its owning ``tenant_id`` so it can be
scanned or purged per tenant.

Two implementations share the :class:`RecordStore` protocol:

* :class:`InMemoryRecordStore` -- process-local dictionaries (tests, demos).
* :class:`pilot_engine.state.sql_store.SqlRecordStore` -- SQLAlchemy async
  over PostgreSQL or SQLite.

``get_or_create`` is idempotent: concurrent or repeated calls for the same
key always return the first stored document and never duplicate it.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

# Alphanumeric, hyphens, underscores, 1-128 chars.
_TENANT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")


class RecordKind(str, Enum):
    """Document families held by the store."""

    TENANT = "tenant"
    TRIAL = "trial"
    SUBSCRIPTION = "subscription"
    USAGE = "usage"
    CASE = "case"
    PAYMENT_BATCH = "payment_batch"


def validate_tenant_id(tenant_id: str) -> str:
    """Return *tenant_id* unchanged or raise ``ValueError`` if it is malformed."""
    if not _TENANT_ID_RE.match(tenant_id):
        raise ValueError(f"Invalid tenant_id: must match {_TENANT_ID_RE.pattern!r}, got {tenant_id!r}")
    return tenant_id


class RecordStore(Protocol):
    """Protocol for durable document storage keyed by kind and id."""

    async def get(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        """Return the stored document or ``None``."""
        ...

    async def put(self, kind: RecordKind, record_id: str, tenant_id: str, data: dict[str, Any]) -> None:
        """Insert or replace a document."""
        ...

    async def get_or_create(
        self,
        kind: RecordKind,
        record_id: str,
        tenant_id: str,
        factory: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        """Return the existing document, storing ``factory()`` first if absent."""
        ...

    async def scan(self, kind: RecordKind, tenant_id: str | None = None) -> list[dict[str, Any]]:
        """Return all documents of *kind*, optionally filtered by tenant."""
        ...

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        """Delete one document; return whether it existed."""
        ...

    async def delete_tenant(self, kind: RecordKind, tenant_id: str) -> int:
        """Delete every document of *kind* owned by *tenant_id*; return the count."""
        ...


class InMemoryRecordStore:
    """Dictionary-backed :class:`RecordStore`.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state without an explicit ``put``.
    """

    def __init__(self) -> None:
        self._rows: dict[tuple[RecordKind, str], tuple[str, dict[str, Any]]] = {}

    async def get(self, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        row = self._rows.get((kind, record_id))
        if row is None:
            return None
        return copy.deepcopy(row[1])

    async def put(self, kind: RecordKind, record_id: str, tenant_id: str, data: dict[str, Any]) -> None:
        validate_tenant_id(tenant_id)
        self._rows[(kind, record_id)] = (tenant_id, copy.deepcopy(data))

    async def get_or_create(
        self,
        kind: RecordKind,
        record_id: str,
        tenant_id: str,
        factory: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        key = (kind, record_id)
        if key not in self._rows:
            validate_tenant_id(tenant_id)
            self._rows[key] = (tenant_id, copy.deepcopy(factory()))
        return copy.deepcopy(self._rows[key][1])

    async def scan(self, kind: RecordKind, tenant_id: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(data)
            for (row_kind, _), (owner, data) in self._rows.items()
            if row_kind == kind and (tenant_id is None or owner == tenant_id)
        ]

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        return self._rows.pop((kind, record_id), None) is not None

    async def delete_tenant(self, kind: RecordKind, tenant_id: str) -> int:
        doomed = [key for key, (owner, _) in self._rows.items() if key[0] == kind and owner == tenant_id]
        for key in doomed:
            del self._rows[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._rows)
