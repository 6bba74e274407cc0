"""Trial timeline and the retention purge.

Trial timeline for a tenant without an active subscription::

    started_at ──(trial_days)──> ends_at ──(retention_days)──> retention_delete_at
       access enabled              access disabled             data purged

All transitions are lazy: the trial completes the first time someone
observes it at or after ``ends_at``, and data is purged the first time
:meth:`TrialLifecycle.reap_expired_tenant` runs at or after
``retention_delete_at``.  Both are idempotent.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from enum import Enum

from pilot_engine.billing.ledger import UsageLedger
from pilot_engine.clock import Clock
from pilot_engine.metering import BillingCollector, BillingEventType
from pilot_engine.models import TrialRecord, TrialStatus
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import (
    CaseRepository,
    PaymentBatchRepository,
    SubscriptionRepository,
    TenantRepository,
    TrialRepository,
    UsageRepository,
)
from pilot_engine.state.store import RecordStore
from pilot_engine.storage import TenantFileStorage

logger = logging.getLogger(__name__)


class ReapOutcome(str, Enum):
    """Result of a single :meth:`TrialLifecycle.reap_expired_tenant` call."""

    SUBSCRIBED = "subscribed"
    NO_TRIAL = "no_trial"
    TRIAL_ACTIVE = "trial_active"
    RETENTION_PENDING = "retention_pending"
    PURGED = "purged"
    ALREADY_PURGED = "already_purged"


class TrialLifecycle:
    """Access gating, trial grants, and retention purges.

    Parameters
    ----------
    store:
        Record store.
    clock:
        Time source.
    locks:
        Tenant lock registry shared with the other services.
    ledger:
        Usage ledger; trial counters are reset when a trial restarts.
    storage:
        Tenant file storage cleared by the purge.
    trial_days, retention_days:
        Length of a lazily created trial and of the post-trial retention window.
    collector:
        Optional billing collector; purges are recorded as events.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        locks: TenantLocks,
        ledger: UsageLedger,
        storage: TenantFileStorage,
        *,
        trial_days: int = 30,
        retention_days: int = 30,
        collector: BillingCollector | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._ledger = ledger
        self._storage = storage
        self._trial_days = trial_days
        self._retention = timedelta(days=retention_days)
        self._collector = collector

    # ------------------------------------------------------------------
    # Access gate
    # ------------------------------------------------------------------

    async def is_access_enabled(self, tenant_id: str) -> bool:
        """Return whether *tenant_id* may use tenant-scoped operations right now."""
        async with self._locks.hold(tenant_id):
            return await self.is_access_enabled_locked(tenant_id)

    async def is_access_enabled_locked(self, tenant_id: str) -> bool:
        now = self._clock.now()
        tenant = await TenantRepository(self._store, tenant_id).ensure(now)
        if tenant.is_blocked:
            logger.debug("Access blocked by account status: tenant=%s status=%s", tenant_id, tenant.account_status.value)
            return False

        subscription = await SubscriptionRepository(self._store, tenant_id).get()
        if subscription is not None and subscription.is_active:
            return True

        trial = await self.ensure_trial_locked(tenant_id)
        return trial.status == TrialStatus.ACTIVE

    async def ensure_trial_locked(self, tenant_id: str) -> TrialRecord:
        """Get-or-create the trial and complete it if it has run out."""
        repo = TrialRepository(self._store, tenant_id)
        trial = await repo.ensure(self._clock.now(), self._trial_days)
        return await self._complete_if_expired(repo, trial)

    async def _complete_if_expired(self, repo: TrialRepository, trial: TrialRecord) -> TrialRecord:
        if trial.status == TrialStatus.COMPLETE or self._clock.now() < trial.ends_at:
            return trial
        trial.status = TrialStatus.COMPLETE
        trial.retention_delete_at = trial.ends_at + self._retention
        await repo.save(trial)
        logger.info(
            "Trial complete: tenant=%s ended_at=%s retention_delete_at=%s",
            trial.tenant_id,
            trial.ends_at.isoformat(),
            trial.retention_delete_at.isoformat(),
            extra={"tenant_id": trial.tenant_id, "event": "trial_complete"},
        )
        return trial

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    async def grant_or_extend_trial(self, tenant_id: str, days: int) -> TrialRecord:
        """Create, extend, or restart the tenant's trial.

        * no trial: start one lasting *days*.
        * active trial: push ``ends_at`` out by *days*.
        * completed trial: restart at now with fresh trial counters.
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")

        async with self._locks.hold(tenant_id):
            now = self._clock.now()
            await TenantRepository(self._store, tenant_id).ensure(now)
            repo = TrialRepository(self._store, tenant_id)
            trial = await repo.get()
            length = timedelta(days=days)

            if trial is None:
                trial = TrialRecord(tenant_id=tenant_id, started_at=now, ends_at=now + length)
                action = "granted"
            else:
                trial = await self._complete_if_expired(repo, trial)
                if trial.status == TrialStatus.ACTIVE:
                    trial.ends_at = trial.ends_at + length
                    action = "extended"
                else:
                    trial = TrialRecord(tenant_id=tenant_id, started_at=now, ends_at=now + length)
                    await self._ledger.reset_trial_counters_locked(tenant_id)
                    action = "restarted"

            await repo.save(trial)

        logger.info(
            "Trial %s: tenant=%s days=%d ends_at=%s",
            action,
            tenant_id,
            days,
            trial.ends_at.isoformat(),
            extra={"tenant_id": tenant_id, "event": f"trial_{action}"},
        )
        return trial

    # ------------------------------------------------------------------
    # Retention purge
    # ------------------------------------------------------------------

    async def reap_expired_tenant(self, tenant_id: str) -> ReapOutcome:
        """Purge the tenant's data once the retention window has passed.

        Holds the tenant lock for the whole purge, so case creation cannot
        interleave with it; creation checks access first and therefore
        fails closed afterwards.
        """
        async with self._locks.hold(tenant_id):
            subscription = await SubscriptionRepository(self._store, tenant_id).get()
            if subscription is not None and subscription.is_active:
                return ReapOutcome.SUBSCRIBED

            repo = TrialRepository(self._store, tenant_id)
            trial = await repo.get()
            if trial is None:
                return ReapOutcome.NO_TRIAL

            trial = await self._complete_if_expired(repo, trial)
            if trial.status != TrialStatus.COMPLETE:
                return ReapOutcome.TRIAL_ACTIVE
            if trial.purged_at is not None:
                return ReapOutcome.ALREADY_PURGED

            now = self._clock.now()
            if trial.retention_delete_at is None or now < trial.retention_delete_at:
                return ReapOutcome.RETENTION_PENDING

            cases_deleted = await CaseRepository(self._store, tenant_id).delete_all()
            batches_deleted = await PaymentBatchRepository(self._store, tenant_id).delete_all()
            await UsageRepository(self._store, tenant_id).delete()
            files_removed = await asyncio.to_thread(self._storage.remove_tenant, tenant_id)

            trial.purged_at = now
            await repo.save(trial)

        logger.warning(
            "Tenant data purged after retention: tenant=%s cases=%d payment_batches=%d files_removed=%s",
            tenant_id,
            cases_deleted,
            batches_deleted,
            files_removed,
            extra={"tenant_id": tenant_id, "outcome": ReapOutcome.PURGED.value},
        )
        if self._collector is not None:
            self._collector.emit(
                tenant_id,
                BillingEventType.TENANT_PURGED,
                quantity=cases_deleted,
                occurred_at=now,
                metadata={"payment_batches": batches_deleted},
            )
        return ReapOutcome.PURGED
