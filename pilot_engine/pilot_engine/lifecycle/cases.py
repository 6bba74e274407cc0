"""Case lifecycle: creation and advance-on-observation.

There are no background timers.  Every read of a case (``get_case``,
``list_cases``, the sweeper) first tries to move it forward:

* ``UPLOAD_RECEIVED -> ANALYZING`` when admission control lets a job start.
  A denied case simply stays queued until a later observation.
* ``ANALYZING -> DRAFT_READY`` once the processing delay has elapsed since
  ``ai_started_at``.  The draft generator runs exactly once, at this step.

Status only ever moves forward.  Both steps can fire in one observation
only when the processing delay is zero.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Sequence
from datetime import timedelta

from pilot_engine.billing.admission import AdmissionController
from pilot_engine.billing.ledger import UsageLedger
from pilot_engine.billing.plans import PlanResolver
from pilot_engine.clock import Clock
from pilot_engine.drafting import DraftGenerator
from pilot_engine.errors import AccessDeniedError, CaseNotFoundError, LimitExceededError
from pilot_engine.lifecycle.trial import TrialLifecycle
from pilot_engine.metering import BillingCollector, BillingEventType
from pilot_engine.models import (
    AdmissionDecision,
    Case,
    CaseFile,
    CaseStatus,
    DraftResult,
    LimitKind,
    PlanProfile,
)
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import CaseRepository, TenantRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


def validate_files(files: Sequence[CaseFile], profile: PlanProfile) -> AdmissionDecision:
    """Check an upload against the plan's per-case file limits."""
    if len(files) > profile.max_files_per_case:
        return AdmissionDecision.deny(
            LimitKind.FILE_COUNT,
            f"Too many files ({len(files)}); the {profile.mode.value} plan allows {profile.max_files_per_case} per case.",
        )
    for item in files:
        if item.size_bytes > profile.max_file_size_bytes:
            return AdmissionDecision.deny(
                LimitKind.FILE_SIZE,
                f"File '{item.name}' is {item.size_bytes} bytes; the limit is {profile.max_file_size_bytes}.",
            )
    return AdmissionDecision.allow()


class CaseLifecycle:
    """Creates cases and applies their time-driven transitions."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        locks: TenantLocks,
        plans: PlanResolver,
        ledger: UsageLedger,
        admission: AdmissionController,
        trials: TrialLifecycle,
        drafts: DraftGenerator,
        *,
        processing_delay_seconds: int = 20,
        collector: BillingCollector | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._plans = plans
        self._ledger = ledger
        self._admission = admission
        self._trials = trials
        self._drafts = drafts
        self._delay = timedelta(seconds=processing_delay_seconds)
        self._collector = collector

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_case(
        self,
        tenant_id: str,
        files: Sequence[CaseFile] = (),
        notes: str | None = None,
    ) -> Case:
        """Create a case and make one attempt to start its analysis.

        Checks run in order: access, file limits, the trial case cap.  Only
        then is a case credit consumed and the case persisted.

        Raises
        ------
        AccessDeniedError
            If the tenant's access is disabled.
        LimitExceededError
            On a file-count, file-size or trial-case limit.
        """
        async with self._locks.hold(tenant_id):
            if not await self._trials.is_access_enabled_locked(tenant_id):
                raise AccessDeniedError(tenant_id)

            profile = await self._plans.resolve_limits(tenant_id)

            decision = validate_files(files, profile)
            if not decision.ok:
                logger.warning(
                    "Case upload rejected: tenant=%s %s",
                    tenant_id,
                    decision.reason,
                    extra={"tenant_id": tenant_id, "limit": decision.limit},
                )
                raise LimitExceededError(decision)

            decision = await self._admission.pilot_can_create_case_locked(tenant_id, profile)
            if not decision.ok:
                raise LimitExceededError(decision)

            overage = await self._ledger.consume_case_credit_locked(tenant_id, profile)

            now = self._clock.now()
            case = Case(
                case_id=f"case-{uuid.uuid4().hex[:12]}",
                tenant_id=tenant_id,
                created_at=now,
                seq=await TenantRepository(self._store, tenant_id).next_case_seq(now),
                files=list(files),
                notes=notes,
            )
            await CaseRepository(self._store, tenant_id).save(case)
            logger.info(
                "Case created: tenant=%s case=%s files=%d overage=%s",
                tenant_id,
                case.case_id,
                len(case.files),
                overage,
                extra={"tenant_id": tenant_id, "case_id": case.case_id, "event": "case_created"},
            )
            if self._collector is not None:
                self._collector.emit(
                    tenant_id,
                    BillingEventType.CASE_CREATED,
                    occurred_at=case.created_at,
                    metadata={"case_id": case.case_id, "mode": profile.mode.value, "overage": overage},
                )

            return await self._advance_locked(case, profile)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    async def advance_case(self, tenant_id: str, case_id: str) -> Case:
        """Apply any due transitions to one case and return it."""
        async with self._locks.hold(tenant_id):
            return await self.advance_case_locked(tenant_id, case_id)

    async def advance_case_locked(self, tenant_id: str, case_id: str) -> Case:
        case = await CaseRepository(self._store, tenant_id).get(case_id)
        if case is None:
            raise CaseNotFoundError(tenant_id, case_id)
        return await self._advance_locked(case)

    async def get_case(self, tenant_id: str, case_id: str) -> Case:
        """Polling entry point: observing a case advances it."""
        return await self.advance_case(tenant_id, case_id)

    async def list_cases(self, tenant_id: str) -> list[Case]:
        """Advance every open case (oldest first) and return all cases."""
        async with self._locks.hold(tenant_id):
            cases, _ = await self.advance_open_cases_locked(tenant_id)
            return cases

    async def advance_open_cases(self, tenant_id: str) -> int:
        """Advance every open case; return how many changed status."""
        async with self._locks.hold(tenant_id):
            _, changed = await self.advance_open_cases_locked(tenant_id)
            return changed

    async def advance_open_cases_locked(self, tenant_id: str) -> tuple[list[Case], int]:
        cases = await CaseRepository(self._store, tenant_id).list_all()
        profile = None
        changed = 0
        result: list[Case] = []
        for case in cases:
            if not case.status.is_terminal:
                profile = profile or await self._plans.resolve_limits(tenant_id)
                before = case.status
                case = await self._advance_locked(case, profile)
                if case.status != before:
                    changed += 1
            result.append(case)
        return result, changed

    async def mark_paid(self, tenant_id: str, case_ids: Sequence[str]) -> list[Case]:
        """Flag cases as paid.  Unknown ids raise before anything is written."""
        async with self._locks.hold(tenant_id):
            cases = await self.load_cases_locked(tenant_id, case_ids)
            await self.mark_paid_locked(cases)
            return cases

    async def load_cases_locked(self, tenant_id: str, case_ids: Sequence[str]) -> list[Case]:
        """Fetch each distinct case id, raising :class:`CaseNotFoundError` on the first unknown one."""
        repo = CaseRepository(self._store, tenant_id)
        cases = []
        for case_id in dict.fromkeys(case_ids):
            case = await repo.get(case_id)
            if case is None:
                raise CaseNotFoundError(tenant_id, case_id)
            cases.append(case)
        return cases

    async def mark_paid_locked(self, cases: Sequence[Case]) -> None:
        for case in cases:
            if not case.paid:
                case.paid = True
                await CaseRepository(self._store, case.tenant_id).save(case)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _advance_locked(self, case: Case, profile: PlanProfile | None = None) -> Case:
        tenant_id = case.tenant_id
        changed = False

        if case.status == CaseStatus.UPLOAD_RECEIVED:
            profile = profile or await self._plans.resolve_limits(tenant_id)
            decision = await self._admission.try_admit_job_locked(tenant_id, profile)
            if decision.ok:
                self._move(case, CaseStatus.ANALYZING)
                case.ai_started_at = self._clock.now()
                changed = True
            else:
                logger.debug(
                    "Case stays queued: tenant=%s case=%s reason=%s",
                    tenant_id,
                    case.case_id,
                    decision.reason,
                    extra={"tenant_id": tenant_id, "case_id": case.case_id, "limit": decision.limit},
                )

        if case.status == CaseStatus.ANALYZING and case.ai_started_at is not None:
            now = self._clock.now()
            elapsed = now - case.ai_started_at
            if elapsed >= self._delay:
                content = self._drafts.generate(
                    {
                        "case_id": case.case_id,
                        "tenant_id": tenant_id,
                        "file_names": [item.name for item in case.files],
                        "notes": case.notes,
                    }
                )
                case.ai = DraftResult(
                    summary=content["summary"],
                    draft_text=content["draft_text"],
                    category=content["category"],
                    elapsed_seconds=max(1, math.floor(elapsed.total_seconds())),
                    completed_at=now,
                )
                self._move(case, CaseStatus.DRAFT_READY)
                changed = True
                if self._collector is not None:
                    self._collector.emit(
                        tenant_id,
                        BillingEventType.DRAFT_COMPLETED,
                        occurred_at=now,
                        metadata={"case_id": case.case_id, "category": case.ai.category},
                    )

        if changed:
            await CaseRepository(self._store, tenant_id).save(case)
        return case

    @staticmethod
    def _move(case: Case, target: CaseStatus) -> None:
        if target.rank <= case.status.rank:
            raise RuntimeError(f"Case {case.case_id} cannot move from {case.status.value} to {target.value}")
        logger.info(
            "Case %s: %s -> %s",
            case.case_id,
            case.status.value,
            target.value,
            extra={"tenant_id": case.tenant_id, "case_id": case.case_id, "status": target.value},
        )
        case.status = target
