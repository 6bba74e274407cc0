"""Payment-row intake.

A payment upload is a batch of parsed remittance rows, optionally tied to
cases it settles.  Trial tenants draw on a fixed row allowance and are
refused once it is exhausted; subscription tenants are charged credits per
started block of rows and are never refused.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from pilot_engine.billing.ledger import UsageLedger
from pilot_engine.billing.plans import PlanResolver
from pilot_engine.clock import Clock
from pilot_engine.errors import AccessDeniedError, LimitExceededError
from pilot_engine.lifecycle.cases import CaseLifecycle
from pilot_engine.lifecycle.trial import TrialLifecycle
from pilot_engine.metering import BillingCollector, BillingEventType
from pilot_engine.models import AdmissionDecision, LimitKind, PaymentBatch
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import PaymentBatchRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


class PaymentIntake:
    """Records payment batches against the usage ledger."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        locks: TenantLocks,
        plans: PlanResolver,
        ledger: UsageLedger,
        trials: TrialLifecycle,
        cases: CaseLifecycle,
        collector: BillingCollector | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks
        self._plans = plans
        self._ledger = ledger
        self._trials = trials
        self._cases = cases
        self._collector = collector

    async def ingest_payment_rows(
        self,
        tenant_id: str,
        row_count: int,
        case_ids: Sequence[str] = (),
    ) -> PaymentBatch:
        """Ingest *row_count* rows and mark *case_ids* as paid.

        Raises
        ------
        ValueError
            If *row_count* is negative.
        AccessDeniedError
            If the tenant's access is disabled.
        CaseNotFoundError
            If any case id is unknown for this tenant.  Nothing is recorded.
        LimitExceededError
            In trial mode, when the rows exceed the remaining allowance.
        """
        if row_count < 0:
            raise ValueError(f"row_count must be >= 0, got {row_count}")

        async with self._locks.hold(tenant_id):
            if not await self._trials.is_access_enabled_locked(tenant_id):
                raise AccessDeniedError(tenant_id)

            profile = await self._plans.resolve_limits(tenant_id)
            cases = await self._cases.load_cases_locked(tenant_id, case_ids)

            if profile.is_trial:
                allowance = await self._ledger.payment_row_allowance_locked(tenant_id, profile)
                if row_count > allowance:
                    logger.warning(
                        "Payment rows denied: tenant=%s rows=%d allowance=%d",
                        tenant_id,
                        row_count,
                        allowance,
                    )
                    raise LimitExceededError(
                        AdmissionDecision.deny(
                            LimitKind.PAYMENT_ROWS,
                            f"Trial payment row allowance exceeded ({row_count} requested, {allowance} remaining).",
                        )
                    )

            credits = await self._ledger.consume_payment_rows_locked(tenant_id, row_count, profile)

            await self._cases.mark_paid_locked(cases)

            batch = PaymentBatch(
                batch_id=f"pay-{uuid.uuid4().hex[:12]}",
                tenant_id=tenant_id,
                row_count=row_count,
                credits_charged=credits,
                case_ids=[case.case_id for case in cases],
                created_at=self._clock.now(),
            )
            await PaymentBatchRepository(self._store, tenant_id).save(batch)

        logger.info(
            "Payment batch ingested: tenant=%s batch=%s rows=%d credits=%d cases=%d",
            tenant_id,
            batch.batch_id,
            row_count,
            credits,
            len(batch.case_ids),
        )
        if self._collector is not None:
            self._collector.emit(
                tenant_id,
                BillingEventType.PAYMENT_ROWS,
                quantity=row_count,
                occurred_at=batch.created_at,
                metadata={"batch_id": batch.batch_id, "credits": credits, "mode": profile.mode.value},
            )
        return batch

    async def list_batches(self, tenant_id: str) -> list[PaymentBatch]:
        return await PaymentBatchRepository(self._store, tenant_id).list_all()
