"""Tests for case creation and advance-on-observation."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from pilot_engine.clock import FrozenClock
from pilot_engine.config import Settings, StateStoreType
from pilot_engine.errors import AccessDeniedError, CaseNotFoundError, LimitExceededError
from pilot_engine.metering import BillingEventType
from pilot_engine.models import CaseFile, CaseStatus, LimitKind
from pilot_engine.services import PilotServices, build_services
from pilot_engine.state.store import InMemoryRecordStore

TENANT = "clinic-a"
_MIB = 1024 * 1024


class CountingDrafts:
    """Draft generator that records how often it was invoked."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def generate(self, context: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(context["case_id"])
        return {"summary": "s", "draft_text": "d", "category": "eligibility"}


def _count(cases: list, status: CaseStatus) -> int:
    return sum(1 for case in cases if case.status == status)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateCase:
    @pytest.mark.asyncio
    async def test_new_case_starts_analysis_when_admitted(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        case = await services.cases.create_case(TENANT, one_file, notes="CO-50 medical necessity")

        assert case.status == CaseStatus.ANALYZING
        assert case.ai_started_at == clock.now()
        assert case.tenant_id == TENANT
        assert case.case_id.startswith("case-")
        usage = await services.ledger.get_usage(TENANT)
        assert usage.trial_cases_used == 1
        assert len(usage.job_timestamps) == 1

    @pytest.mark.asyncio
    async def test_too_many_files_rejected_without_consuming_credit(self, services: PilotServices) -> None:
        files = [CaseFile(name=f"page-{i}.pdf", size_bytes=10) for i in range(6)]

        with pytest.raises(LimitExceededError) as exc_info:
            await services.cases.create_case(TENANT, files)

        assert exc_info.value.limit == LimitKind.FILE_COUNT
        usage = await services.ledger.get_usage(TENANT)
        assert usage.trial_cases_used == 0
        assert await services.cases.list_cases(TENANT) == []

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, services: PilotServices) -> None:
        files = [CaseFile(name="scan.tiff", size_bytes=11 * _MIB)]
        with pytest.raises(LimitExceededError) as exc_info:
            await services.cases.create_case(TENANT, files)
        assert exc_info.value.limit == LimitKind.FILE_SIZE

    @pytest.mark.asyncio
    async def test_subscription_allows_larger_uploads(self, services: PilotServices) -> None:
        await services.subscriptions.activate_subscription(TENANT)
        files = [CaseFile(name=f"scan-{i}.tiff", size_bytes=20 * _MIB) for i in range(8)]
        case = await services.cases.create_case(TENANT, files)
        assert len(case.files) == 8

    @pytest.mark.asyncio
    async def test_access_disabled_after_trial_ends(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        await services.cases.create_case(TENANT, one_file)
        clock.advance(days=30)

        with pytest.raises(AccessDeniedError):
            await services.cases.create_case(TENANT, one_file)

    @pytest.mark.asyncio
    async def test_creation_emits_billing_events(self, services: PilotServices, one_file: list[CaseFile]) -> None:
        await services.cases.create_case(TENANT, one_file)
        summary = services.collector.pending_summary(TENANT)
        assert summary[BillingEventType.CASE_CREATED.value] == 1
        assert summary[BillingEventType.JOB_ADMITTED.value] == 1


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestAdvanceCase:
    @pytest.mark.asyncio
    async def test_draft_ready_after_processing_delay(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        case = await services.cases.create_case(TENANT, one_file, notes="prior authorization missing")

        clock.advance(seconds=19)
        assert (await services.cases.get_case(TENANT, case.case_id)).status == CaseStatus.ANALYZING

        clock.advance(seconds=1)
        ready = await services.cases.get_case(TENANT, case.case_id)
        assert ready.status == CaseStatus.DRAFT_READY
        assert ready.ai is not None
        assert ready.ai.elapsed_seconds == 20
        assert ready.ai.category == "prior_authorization"
        assert ready.ai.completed_at == clock.now()

    @pytest.mark.asyncio
    async def test_draft_generated_exactly_once(
        self,
        store: InMemoryRecordStore,
        clock: FrozenClock,
        settings: Settings,
        one_file: list[CaseFile],
    ) -> None:
        drafts = CountingDrafts()
        services = build_services(store, settings=settings, clock=clock, drafts=drafts)
        case = await services.cases.create_case(TENANT, one_file)

        clock.advance(seconds=30)
        first = await services.cases.advance_case(TENANT, case.case_id)
        clock.advance(minutes=5)
        second = await services.cases.advance_case(TENANT, case.case_id)

        assert drafts.calls == [case.case_id]
        assert second.status == CaseStatus.DRAFT_READY
        assert second.ai == first.ai

    @pytest.mark.asyncio
    async def test_zero_delay_completes_in_one_observation_with_minimum_elapsed(
        self,
        store: InMemoryRecordStore,
        clock: FrozenClock,
        tmp_path: Path,
        one_file: list[CaseFile],
    ) -> None:
        settings = Settings(
            state_store_type=StateStoreType.MEMORY,
            file_storage_path=tmp_path,
            processing_delay_seconds=0,
        )
        services = build_services(store, settings=settings, clock=clock)

        case = await services.cases.create_case(TENANT, one_file)
        assert case.status == CaseStatus.DRAFT_READY
        assert case.ai is not None
        assert case.ai.elapsed_seconds == 1

    @pytest.mark.asyncio
    async def test_unknown_case_raises(self, services: PilotServices) -> None:
        with pytest.raises(CaseNotFoundError):
            await services.cases.get_case(TENANT, "case-missing")

    @pytest.mark.asyncio
    async def test_other_tenants_case_is_not_visible(self, services: PilotServices, one_file: list[CaseFile]) -> None:
        case = await services.cases.create_case(TENANT, one_file)
        with pytest.raises(CaseNotFoundError):
            await services.cases.get_case("clinic-b", case.case_id)

    @pytest.mark.asyncio
    async def test_draft_completion_is_metered(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        case = await services.cases.create_case(TENANT, one_file)
        clock.advance(seconds=25)
        await services.cases.get_case(TENANT, case.case_id)

        services.collector.flush()
        completed = [e for e in services.collector.sink.events if e.event_type == BillingEventType.DRAFT_COMPLETED]
        assert [e.metadata["case_id"] for e in completed] == [case.case_id]


# ---------------------------------------------------------------------------
# End-to-end trial scenario
# ---------------------------------------------------------------------------


class TestTrialScenario:
    @pytest.mark.asyncio
    async def test_twenty_five_cases_two_analyzing_then_cap(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        for _ in range(25):
            await services.cases.create_case(TENANT, one_file)

        cases = await services.cases.list_cases(TENANT)
        assert len(cases) == 25
        assert _count(cases, CaseStatus.ANALYZING) == 2
        assert _count(cases, CaseStatus.UPLOAD_RECEIVED) == 23

        with pytest.raises(LimitExceededError) as exc_info:
            await services.cases.create_case(TENANT, one_file)
        assert exc_info.value.limit == LimitKind.TRIAL_CASES

        usage = await services.ledger.get_usage(TENANT)
        assert usage.trial_cases_used == 25

    @pytest.mark.asyncio
    async def test_queued_cases_start_in_creation_order_once_window_frees(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        created = []
        for _ in range(5):
            created.append(await services.cases.create_case(TENANT, one_file))
            clock.advance(seconds=1)

        # Drafts for the first two are done, but the hourly window is still full.
        clock.advance(seconds=30)
        cases = await services.cases.list_cases(TENANT)
        assert _count(cases, CaseStatus.DRAFT_READY) == 2
        assert _count(cases, CaseStatus.ANALYZING) == 0

        clock.advance(hours=1)
        cases = await services.cases.list_cases(TENANT)
        analyzing = [case.case_id for case in cases if case.status == CaseStatus.ANALYZING]
        assert analyzing == [created[2].case_id, created[3].case_id]

    @pytest.mark.asyncio
    async def test_cases_created_in_the_same_instant_keep_creation_order(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        created = [await services.cases.create_case(TENANT, one_file) for _ in range(8)]

        assert [case.seq for case in created] == list(range(1, 9))
        cases = await services.cases.list_cases(TENANT)
        assert [case.case_id for case in cases] == [case.case_id for case in created]

        clock.advance(seconds=30)
        await services.cases.list_cases(TENANT)
        clock.advance(hours=1)
        cases = await services.cases.list_cases(TENANT)
        analyzing = [case.case_id for case in cases if case.status == CaseStatus.ANALYZING]
        assert analyzing == [created[2].case_id, created[3].case_id]

        tenant = await services.tenants.get_tenant(TENANT)
        assert tenant.case_seq == 8

    @pytest.mark.asyncio
    async def test_status_never_regresses(
        self,
        services: PilotServices,
        clock: FrozenClock,
        one_file: list[CaseFile],
    ) -> None:
        case = await services.cases.create_case(TENANT, one_file)
        seen = [case.status.rank]
        for _ in range(5):
            clock.advance(seconds=7)
            seen.append((await services.cases.get_case(TENANT, case.case_id)).status.rank)
        assert seen == sorted(seen)
        assert seen[-1] == CaseStatus.DRAFT_READY.rank

    @pytest.mark.asyncio
    async def test_concurrent_creation_cannot_exceed_trial_cap(
        self,
        services: PilotServices,
        one_file: list[CaseFile],
    ) -> None:
        for _ in range(23):
            await services.cases.create_case(TENANT, one_file)

        results = await asyncio.gather(
            *(services.cases.create_case(TENANT, one_file) for _ in range(4)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, LimitExceededError)]
        assert len(errors) == 2
        usage = await services.ledger.get_usage(TENANT)
        assert usage.trial_cases_used == 25


# ---------------------------------------------------------------------------
# Paid flag
# ---------------------------------------------------------------------------


class TestMarkPaid:
    @pytest.mark.asyncio
    async def test_marks_listed_cases(self, services: PilotServices, one_file: list[CaseFile]) -> None:
        case = await services.cases.create_case(TENANT, one_file)
        other = await services.cases.create_case(TENANT, one_file)

        await services.cases.mark_paid(TENANT, [case.case_id])

        cases = {c.case_id: c for c in await services.cases.list_cases(TENANT)}
        assert cases[case.case_id].paid is True
        assert cases[other.case_id].paid is False

    @pytest.mark.asyncio
    async def test_unknown_id_marks_nothing(self, services: PilotServices, one_file: list[CaseFile]) -> None:
        case = await services.cases.create_case(TENANT, one_file)
        with pytest.raises(CaseNotFoundError):
            await services.cases.mark_paid(TENANT, [case.case_id, "case-missing"])
        assert (await services.cases.get_case(TENANT, case.case_id)).paid is False

