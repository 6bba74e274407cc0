"""Tenant registration and account status."""

from __future__ import annotations

import logging

from pilot_engine.clock import Clock
from pilot_engine.errors import TenantNotFoundError
from pilot_engine.lifecycle.trial import TrialLifecycle
from pilot_engine.models import AccountStatus, Tenant
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import TenantRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


class TenantService:
    """Explicit tenant onboarding and suspension.

    Tenants are otherwise created lazily on their first tenant-scoped call.
    """

    def __init__(self, store: RecordStore, clock: Clock, locks: TenantLocks, trials: TrialLifecycle) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._trials = trials

    async def register_tenant(self, tenant_id: str, display_name: str | None = None) -> Tenant:
        """Idempotently create the tenant and its trial.

        A display name given for an existing tenant replaces the stored one.
        """
        async with self._locks.hold(tenant_id):
            repo = TenantRepository(self._store, tenant_id)
            tenant = await repo.ensure(self._clock.now(), display_name)
            if display_name is not None and tenant.display_name != display_name:
                tenant.display_name = display_name
                await repo.save(tenant)
            await self._trials.ensure_trial_locked(tenant_id)

        logger.info("Tenant registered: tenant=%s", tenant_id)
        return tenant

    async def set_account_status(self, tenant_id: str, status: AccountStatus) -> Tenant:
        async with self._locks.hold(tenant_id):
            repo = TenantRepository(self._store, tenant_id)
            tenant = await repo.get()
            if tenant is None:
                raise TenantNotFoundError(tenant_id)
            previous = tenant.account_status
            tenant.account_status = status
            await repo.save(tenant)

        logger.info("Account status changed: tenant=%s %s -> %s", tenant_id, previous.value, status.value)
        return tenant

    async def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = await TenantRepository(self._store, tenant_id).get()
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def list_tenants(self) -> list[Tenant]:
        return await TenantRepository.list_all(self._store)
