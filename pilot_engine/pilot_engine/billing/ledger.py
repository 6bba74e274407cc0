"""Usage ledger: durable per-tenant consumption counters.

Counter semantics by plan mode::

    trial         trial_cases_used, trial_payment_rows_used
                  (lifetime of the trial; survive period rollover)
    subscription  period_case_credits_used, period_case_overage_count,
                  period_payment_rows_used, period_payment_credits_used
                  (reset when the UTC calendar month changes)

``job_timestamps`` is the sliding-window log for the hourly job cap and is
pruned to the trailing hour every time the record is read.

Every public method takes the tenant lock and performs a full
read-modify-write of the usage record.  The ``*_locked`` variants are for
callers that already hold the lock (admission, case creation, purge).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pilot_engine.billing.plans import PlanResolver
from pilot_engine.clock import Clock, period_key
from pilot_engine.metering import BillingCollector, BillingEventType
from pilot_engine.models import PlanProfile, UsageRecord
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import UsageRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)

JOB_WINDOW = timedelta(seconds=3600)


def prune_job_timestamps(timestamps: list[datetime], now: datetime) -> list[datetime]:
    """Keep only instants strictly inside the trailing :data:`JOB_WINDOW`."""
    cutoff = now - JOB_WINDOW
    return [ts for ts in timestamps if ts > cutoff]


def credits_for_rows(row_count: int, rows_per_credit: int) -> int:
    """Convert rows to credits, rounding any partial block up."""
    return (row_count + rows_per_credit - 1) // rows_per_credit


class UsageLedger:
    """Reads and mutates :class:`UsageRecord` documents.

    Parameters
    ----------
    store:
        Record store holding usage documents.
    clock:
        Time source for period keys and the job window.
    locks:
        Per-tenant lock registry shared with the other services.
    plans:
        Resolves whether a tenant is in trial or subscription mode.
    collector:
        Optional billing collector; overages are emitted as events.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        locks: TenantLocks,
        plans: PlanResolver,
        collector: BillingCollector | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._plans = plans
        self._collector = collector

    # -- Reads ---------------------------------------------------------------

    async def get_usage(self, tenant_id: str) -> UsageRecord:
        """Return the tenant's usage record, creating or rolling it over as needed."""
        async with self._locks.hold(tenant_id):
            return await self.get_usage_locked(tenant_id)

    async def get_usage_locked(self, tenant_id: str) -> UsageRecord:
        now = self._clock.now()
        current_key = period_key(now)
        repo = UsageRepository(self._store, tenant_id)
        usage = await repo.ensure(current_key)

        changed = False
        if usage.period_key != current_key:
            logger.info(
                "Usage period rollover tenant=%s %s -> %s (credits=%d overage=%d)",
                tenant_id,
                usage.period_key,
                current_key,
                usage.period_case_credits_used,
                usage.period_case_overage_count,
                extra={"tenant_id": tenant_id, "event": "period_rollover"},
            )
            usage.reset_period(current_key)
            changed = True

        pruned = prune_job_timestamps(usage.job_timestamps, now)
        if len(pruned) != len(usage.job_timestamps):
            usage.job_timestamps = pruned
            changed = True

        if changed:
            await repo.save(usage)
        return usage

    async def payment_row_allowance(self, tenant_id: str) -> int:
        """Rows the tenant may still ingest in the current trial or period (never negative)."""
        async with self._locks.hold(tenant_id):
            return await self.payment_row_allowance_locked(tenant_id)

    async def payment_row_allowance_locked(self, tenant_id: str, profile: PlanProfile | None = None) -> int:
        profile = profile or await self._plans.resolve_limits(tenant_id)
        usage = await self.get_usage_locked(tenant_id)
        if profile.is_trial:
            included = profile.included_payment_rows or 0
            return max(0, included - usage.trial_payment_rows_used)
        credits = profile.payment_row_credits_per_period or 0
        return max(0, credits * profile.payment_rows_per_credit - usage.period_payment_rows_used)

    # -- Mutations -----------------------------------------------------------

    async def consume_case_credit(self, tenant_id: str) -> bool:
        """Consume one case credit; return ``True`` if this was an overage."""
        async with self._locks.hold(tenant_id):
            return await self.consume_case_credit_locked(tenant_id)

    async def consume_case_credit_locked(self, tenant_id: str, profile: PlanProfile | None = None) -> bool:
        profile = profile or await self._plans.resolve_limits(tenant_id)
        usage = await self.get_usage_locked(tenant_id)

        overage = False
        if profile.is_trial:
            # Trial has no overage; the lifetime cap is enforced at admission.
            usage.trial_cases_used += 1
        else:
            usage.period_case_credits_used += 1
            if usage.period_case_credits_used > (profile.case_credits_per_period or 0):
                usage.period_case_overage_count += 1
                overage = True

        await UsageRepository(self._store, tenant_id).save(usage)

        if overage:
            logger.info(
                "Case credit overage tenant=%s period=%s used=%d allotment=%s overage_count=%d",
                tenant_id,
                usage.period_key,
                usage.period_case_credits_used,
                profile.case_credits_per_period,
                usage.period_case_overage_count,
                extra={"tenant_id": tenant_id, "event": "case_overage"},
            )
            if self._collector is not None:
                self._collector.emit(
                    tenant_id,
                    BillingEventType.CASE_OVERAGE,
                    amount=profile.overage_price_per_case,
                    occurred_at=self._clock.now(),
                    metadata={"period_key": usage.period_key, "overage_count": usage.period_case_overage_count},
                )
        return overage

    async def consume_payment_rows(self, tenant_id: str, row_count: int) -> int:
        """Record *row_count* ingested rows; return the credits charged."""
        async with self._locks.hold(tenant_id):
            return await self.consume_payment_rows_locked(tenant_id, row_count)

    async def consume_payment_rows_locked(
        self,
        tenant_id: str,
        row_count: int,
        profile: PlanProfile | None = None,
    ) -> int:
        if row_count < 0:
            raise ValueError(f"row_count must be >= 0, got {row_count}")

        profile = profile or await self._plans.resolve_limits(tenant_id)
        usage = await self.get_usage_locked(tenant_id)

        credits = 0
        if profile.is_trial:
            usage.trial_payment_rows_used += row_count
        else:
            credits = credits_for_rows(row_count, profile.payment_rows_per_credit)
            usage.period_payment_rows_used += row_count
            usage.period_payment_credits_used += credits

        await UsageRepository(self._store, tenant_id).save(usage)
        return credits

    async def record_job(self, tenant_id: str) -> None:
        """Append "now" to the job log after pruning it to the trailing hour."""
        async with self._locks.hold(tenant_id):
            await self.record_job_locked(tenant_id)

    async def record_job_locked(self, tenant_id: str) -> None:
        usage = await self.get_usage_locked(tenant_id)
        usage.job_timestamps.append(self._clock.now())
        await UsageRepository(self._store, tenant_id).save(usage)

    async def reset_trial_counters_locked(self, tenant_id: str) -> None:
        """Zero the trial-scoped counters (only when a trial restarts)."""
        usage = await self.get_usage_locked(tenant_id)
        usage.trial_cases_used = 0
        usage.trial_payment_rows_used = 0
        await UsageRepository(self._store, tenant_id).save(usage)
