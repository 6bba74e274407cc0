"""Shared fixtures for ClaimPilot CLI tests.

Commands normally open the configured store; here ``open_services`` is
patched to hand back in-memory services driven by a :class:`FrozenClock`.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from pilot_engine.clock import FrozenClock
from pilot_engine.config import Settings, StateStoreType
from pilot_engine.metering import BillingCollector, MemorySink
from pilot_engine.services import PilotServices, build_services
from pilot_engine.state.store import InMemoryRecordStore


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def services(tmp_path: Path, clock: FrozenClock) -> PilotServices:
    settings = Settings(
        state_store_type=StateStoreType.MEMORY,
        file_storage_path=tmp_path / "files",
        metering_file=None,
    )
    return build_services(
        InMemoryRecordStore(),
        settings=settings,
        clock=clock,
        collector=BillingCollector(MemorySink()),
    )


@pytest.fixture
def patched_services(services: PilotServices) -> Iterator[PilotServices]:
    with patch("pilot_cli.app.open_services", AsyncMock(return_value=services)):
        yield services
