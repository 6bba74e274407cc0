"""Shared fixtures for engine unit tests.

Every test runs against the in-memory record store and a
:class:`FrozenClock`, so time only moves when a test advances it.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pilot_engine.clock import FrozenClock
from pilot_engine.config import Settings, StateStoreType
from pilot_engine.metering import BillingCollector, MemorySink
from pilot_engine.models import CaseFile
from pilot_engine.services import PilotServices, build_services
from pilot_engine.state.store import InMemoryRecordStore


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        state_store_type=StateStoreType.MEMORY,
        file_storage_path=tmp_path / "files",
        metering_file=None,
    )


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def services(
    store: InMemoryRecordStore,
    clock: FrozenClock,
    settings: Settings,
    sink: MemorySink,
) -> PilotServices:
    return build_services(
        store,
        settings=settings,
        clock=clock,
        collector=BillingCollector(sink),
    )


@pytest.fixture
def one_file() -> list[CaseFile]:
    return [CaseFile(name="denial-letter.pdf", size_bytes=120_000)]
