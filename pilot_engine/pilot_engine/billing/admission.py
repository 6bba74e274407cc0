"""Admission control for analysis jobs and trial case creation.

Job admission is a two-stage gate evaluated when a queued case is observed:

1. **Concurrency** -- a hard cap on the tenant's cases currently
   ``ANALYZING``, read from live case state.
2. **Hourly rate** -- a sliding window over the persisted job log: the
   window is exactly the trailing 3600 seconds at call time.  The pruned
   log is written back even when the check denies, so the window always
   advances.

Case creation in trial mode is additionally capped by a lifetime case
count.  Subscription tenants are never blocked at creation; exceeding the
monthly credit allotment is a billing event handled by the ledger.

Each check returns an :class:`AdmissionDecision` rather than raising.
"""

from __future__ import annotations

import logging

from pilot_engine.billing.ledger import UsageLedger
from pilot_engine.billing.plans import PlanResolver
from pilot_engine.clock import Clock
from pilot_engine.metering import BillingCollector, BillingEventType
from pilot_engine.models import AdmissionDecision, CaseStatus, LimitKind, PlanProfile
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import CaseRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


class AdmissionController:
    """Concurrency + sliding-window gate in front of the analysis pipeline."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        locks: TenantLocks,
        plans: PlanResolver,
        ledger: UsageLedger,
        collector: BillingCollector | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._plans = plans
        self._ledger = ledger
        self._collector = collector

    async def can_admit_job(self, tenant_id: str) -> AdmissionDecision:
        """Return whether a new analysis job may start for *tenant_id* now."""
        async with self._locks.hold(tenant_id):
            return await self.can_admit_job_locked(tenant_id)

    async def can_admit_job_locked(self, tenant_id: str, profile: PlanProfile | None = None) -> AdmissionDecision:
        profile = profile or await self._plans.resolve_limits(tenant_id)

        analyzing = await CaseRepository(self._store, tenant_id).list_all(
            where=lambda case: case.status == CaseStatus.ANALYZING
        )
        if len(analyzing) >= profile.max_concurrent_processing:
            reason = (
                f"Concurrent processing limit reached ({len(analyzing)}/{profile.max_concurrent_processing}). "
                "The case stays queued and will start when a running analysis finishes."
            )
            logger.warning(
                "Admission denied (concurrency): tenant=%s analyzing=%d/%d",
                tenant_id,
                len(analyzing),
                profile.max_concurrent_processing,
                extra={"tenant_id": tenant_id, "limit": LimitKind.CONCURRENCY.value},
            )
            return AdmissionDecision.deny(LimitKind.CONCURRENCY, reason)

        # get_usage_locked prunes the log to the trailing hour and persists it.
        usage = await self._ledger.get_usage_locked(tenant_id)
        recent = usage.job_timestamps
        if len(recent) >= profile.max_jobs_per_hour:
            reason = (
                f"Hourly analysis limit reached ({len(recent)}/{profile.max_jobs_per_hour} in the last hour). "
                "The case stays queued and will start once the window frees up."
            )
            logger.warning(
                "Admission denied (hourly rate): tenant=%s jobs_last_hour=%d/%d",
                tenant_id,
                len(recent),
                profile.max_jobs_per_hour,
                extra={"tenant_id": tenant_id, "limit": LimitKind.HOURLY_RATE.value},
            )
            return AdmissionDecision.deny(LimitKind.HOURLY_RATE, reason)

        return AdmissionDecision.allow()

    async def try_admit_job_locked(self, tenant_id: str, profile: PlanProfile | None = None) -> AdmissionDecision:
        """Check admission and, if allowed, record the job in the same critical section."""
        profile = profile or await self._plans.resolve_limits(tenant_id)
        decision = await self.can_admit_job_locked(tenant_id, profile)
        if decision.ok:
            await self._ledger.record_job_locked(tenant_id)
            if self._collector is not None:
                self._collector.emit(
                    tenant_id,
                    BillingEventType.JOB_ADMITTED,
                    occurred_at=self._clock.now(),
                    metadata={"mode": profile.mode.value},
                )
        return decision

    async def pilot_can_create_case(self, tenant_id: str) -> AdmissionDecision:
        """Trial-mode lifetime case cap; subscription mode always permits."""
        async with self._locks.hold(tenant_id):
            return await self.pilot_can_create_case_locked(tenant_id)

    async def pilot_can_create_case_locked(
        self,
        tenant_id: str,
        profile: PlanProfile | None = None,
    ) -> AdmissionDecision:
        profile = profile or await self._plans.resolve_limits(tenant_id)
        if not profile.is_trial:
            return AdmissionDecision.allow()

        usage = await self._ledger.get_usage_locked(tenant_id)
        cap = profile.max_cases_total or 0
        if usage.trial_cases_used >= cap:
            logger.warning(
                "Trial case cap reached: tenant=%s cases=%d/%d",
                tenant_id,
                usage.trial_cases_used,
                cap,
                extra={"tenant_id": tenant_id, "limit": LimitKind.TRIAL_CASES.value},
            )
            return AdmissionDecision.deny(
                LimitKind.TRIAL_CASES,
                f"Trial case limit reached ({usage.trial_cases_used}/{cap}). Subscribe to submit more cases.",
            )
        return AdmissionDecision.allow()
