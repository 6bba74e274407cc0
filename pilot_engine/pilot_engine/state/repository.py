"""Typed repositories over the record store.

Each repository is scoped to one tenant at construction time and maps
stored documents to the pydantic records in :mod:`pilot_engine.models`.
Repositories perform no locking and no business logic; services call them
while holding the tenant lock where a read-modify-write is involved.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pilot_engine.models import (
    Case,
    PaymentBatch,
    SubscriptionRecord,
    Tenant,
    TrialRecord,
    UsageRecord,
)
from pilot_engine.state.store import RecordKind, RecordStore

logger = logging.getLogger(__name__)


class TenantRepository:
    """CRUD operations for tenant identity records."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def get(self) -> Tenant | None:
        data = await self._store.get(RecordKind.TENANT, self._tenant_id)
        return Tenant.model_validate(data) if data is not None else None

    async def ensure(self, now: datetime, display_name: str | None = None) -> Tenant:
        """Get-or-create the tenant record (idempotent)."""

        def _factory() -> dict:
            return Tenant(
                tenant_id=self._tenant_id,
                display_name=display_name,
                created_at=now,
            ).model_dump(mode="json")

        data = await self._store.get_or_create(RecordKind.TENANT, self._tenant_id, self._tenant_id, _factory)
        return Tenant.model_validate(data)

    async def save(self, tenant: Tenant) -> None:
        await self._store.put(RecordKind.TENANT, tenant.tenant_id, tenant.tenant_id, tenant.model_dump(mode="json"))

    async def next_case_seq(self, now: datetime) -> int:
        """Advance and persist the tenant's case counter.  Caller holds the tenant lock."""
        tenant = await self.ensure(now)
        tenant.case_seq += 1
        await self.save(tenant)
        return tenant.case_seq

    @staticmethod
    async def list_all(store: RecordStore) -> list[Tenant]:
        """List every tenant (**cross-tenant**; operator and sweeper use only)."""
        rows = await store.scan(RecordKind.TENANT)
        return sorted((Tenant.model_validate(row) for row in rows), key=lambda t: t.tenant_id)


class TrialRepository:
    """Access to the tenant's single trial record."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def get(self) -> TrialRecord | None:
        data = await self._store.get(RecordKind.TRIAL, self._tenant_id)
        return TrialRecord.model_validate(data) if data is not None else None

    async def ensure(self, now: datetime, trial_days: int) -> TrialRecord:
        """Get-or-create the trial; a new trial starts at *now* and lasts *trial_days*."""

        def _factory() -> dict:
            return TrialRecord(
                tenant_id=self._tenant_id,
                started_at=now,
                ends_at=now + timedelta(days=trial_days),
            ).model_dump(mode="json")

        data = await self._store.get_or_create(RecordKind.TRIAL, self._tenant_id, self._tenant_id, _factory)
        return TrialRecord.model_validate(data)

    async def save(self, trial: TrialRecord) -> None:
        await self._store.put(RecordKind.TRIAL, self._tenant_id, self._tenant_id, trial.model_dump(mode="json"))


class SubscriptionRepository:
    """Access to the tenant's single subscription record."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def get(self) -> SubscriptionRecord | None:
        data = await self._store.get(RecordKind.SUBSCRIPTION, self._tenant_id)
        return SubscriptionRecord.model_validate(data) if data is not None else None

    async def save(self, subscription: SubscriptionRecord) -> None:
        await self._store.put(
            RecordKind.SUBSCRIPTION,
            self._tenant_id,
            self._tenant_id,
            subscription.model_dump(mode="json"),
        )


class UsageRepository:
    """Access to the tenant's usage counters."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def ensure(self, period_key: str) -> UsageRecord:
        """Get-or-create a zeroed usage record stamped with *period_key*."""

        def _factory() -> dict:
            return UsageRecord(tenant_id=self._tenant_id, period_key=period_key).model_dump(mode="json")

        data = await self._store.get_or_create(RecordKind.USAGE, self._tenant_id, self._tenant_id, _factory)
        return UsageRecord.model_validate(data)

    async def get(self) -> UsageRecord | None:
        data = await self._store.get(RecordKind.USAGE, self._tenant_id)
        return UsageRecord.model_validate(data) if data is not None else None

    async def save(self, usage: UsageRecord) -> None:
        await self._store.put(RecordKind.USAGE, self._tenant_id, self._tenant_id, usage.model_dump(mode="json"))

    async def delete(self) -> bool:
        return await self._store.delete(RecordKind.USAGE, self._tenant_id)


class CaseRepository:
    """CRUD operations for the tenant's cases."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def get(self, case_id: str) -> Case | None:
        """Fetch a case; cases owned by another tenant are reported as absent."""
        data = await self._store.get(RecordKind.CASE, case_id)
        if data is None:
            return None
        case = Case.model_validate(data)
        if case.tenant_id != self._tenant_id:
            logger.warning("Cross-tenant case lookup refused: tenant=%s case=%s", self._tenant_id, case_id)
            return None
        return case

    async def save(self, case: Case) -> None:
        if case.tenant_id != self._tenant_id:
            raise ValueError(f"Case '{case.case_id}' belongs to tenant '{case.tenant_id}', not '{self._tenant_id}'")
        await self._store.put(RecordKind.CASE, case.case_id, self._tenant_id, case.model_dump(mode="json"))

    async def list_all(self, where: Callable[[Case], bool] | None = None) -> list[Case]:
        """Return the tenant's cases in creation order."""
        rows = await self._store.scan(RecordKind.CASE, tenant_id=self._tenant_id)
        cases = [Case.model_validate(row) for row in rows]
        if where is not None:
            cases = [case for case in cases if where(case)]
        return sorted(cases, key=lambda c: (c.created_at, c.seq, c.case_id))

    async def delete_all(self) -> int:
        return await self._store.delete_tenant(RecordKind.CASE, self._tenant_id)


class PaymentBatchRepository:
    """CRUD operations for ingested payment batches."""

    def __init__(self, store: RecordStore, tenant_id: str) -> None:
        self._store = store
        self._tenant_id = tenant_id

    async def save(self, batch: PaymentBatch) -> None:
        await self._store.put(RecordKind.PAYMENT_BATCH, batch.batch_id, self._tenant_id, batch.model_dump(mode="json"))

    async def list_all(self) -> list[PaymentBatch]:
        rows = await self._store.scan(RecordKind.PAYMENT_BATCH, tenant_id=self._tenant_id)
        return sorted((PaymentBatch.model_validate(row) for row in rows), key=lambda b: (b.created_at, b.batch_id))

    async def delete_all(self) -> int:
        return await self._store.delete_tenant(RecordKind.PAYMENT_BATCH, self._tenant_id)
