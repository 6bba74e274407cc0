"""Shared fixtures for ClaimPilot API tests.

The app runs against in-memory engine services driven by a
:class:`FrozenClock`; the lifespan is not entered, so dependencies are
overridden directly.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pilot_engine.clock import FrozenClock
from pilot_engine.config import Settings, StateStoreType
from pilot_engine.metering import BillingCollector, MemorySink
from pilot_engine.services import PilotServices, build_services
from pilot_engine.state.store import InMemoryRecordStore
from pydantic import SecretStr

from pilot_api.config import APISettings
from pilot_api.dependencies import get_services, get_settings
from pilot_api.main import create_app

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def services(tmp_path: Path, clock: FrozenClock, sink: MemorySink) -> PilotServices:
    settings = Settings(
        state_store_type=StateStoreType.MEMORY,
        file_storage_path=tmp_path / "files",
        metering_file=None,
    )
    return build_services(
        InMemoryRecordStore(),
        settings=settings,
        clock=clock,
        collector=BillingCollector(sink),
    )


@pytest.fixture
def api_settings() -> APISettings:
    return APISettings(admin_token=SecretStr(ADMIN_TOKEN), sweeper_enabled=False)


@pytest.fixture
def app(services: PilotServices, api_settings: APISettings) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_services] = lambda: services
    application.dependency_overrides[get_settings] = lambda: api_settings
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {"X-Tenant-ID": "clinic-a"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}
