"""Tests for the per-tenant lock registry."""

from __future__ import annotations

import asyncio
import gc

import pytest

from pilot_engine.state.locks import TenantLocks


class TestTenantLocks:
    @pytest.mark.asyncio
    async def test_same_tenant_is_serialised(self) -> None:
        locks = TenantLocks()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("clinic-a"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("first"), worker("second"))

        assert order == ["first-in", "first-out", "second-in", "second-out"]

    @pytest.mark.asyncio
    async def test_different_tenants_do_not_contend(self) -> None:
        locks = TenantLocks()
        async with locks.hold("clinic-a"):
            await asyncio.wait_for(self._enter(locks, "clinic-b"), timeout=1)

    @pytest.mark.asyncio
    async def test_waiters_share_one_lock(self) -> None:
        locks = TenantLocks()
        async with locks.hold("clinic-a"):
            waiter = asyncio.create_task(self._enter(locks, "clinic-a"))
            await asyncio.sleep(0)
            assert not waiter.done()
            assert list(locks._locks) == ["clinic-a"]
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self) -> None:
        locks = TenantLocks()
        for index in range(50):
            async with locks.hold(f"clinic-{index}"):
                pass
        gc.collect()

        assert len(locks._locks) == 0

    @staticmethod
    async def _enter(locks: TenantLocks, tenant_id: str) -> None:
        async with locks.hold(tenant_id):
            pass
