"""State layer: record store abstraction, SQL backend, repositories, tenant locks."""

from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.store import InMemoryRecordStore, RecordKind, RecordStore

__all__ = ["InMemoryRecordStore", "RecordKind", "RecordStore", "TenantLocks"]
