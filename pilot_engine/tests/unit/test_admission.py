"""Tests for job admission and the trial case cap."""

from __future__ import annotations

import pytest

from pilot_engine.clock import FrozenClock
from pilot_engine.models import Case, CaseStatus, LimitKind
from pilot_engine.services import PilotServices
from pilot_engine.state.repository import CaseRepository, UsageRepository

TENANT = "clinic-a"


async def _seed_case(services: PilotServices, case_id: str, status: CaseStatus) -> None:
    case = Case(case_id=case_id, tenant_id=TENANT, status=status, created_at=services.clock.now())
    await CaseRepository(services.store, TENANT).save(case)


# ---------------------------------------------------------------------------
# Hourly sliding window
# ---------------------------------------------------------------------------


class TestHourlyWindow:
    @pytest.mark.asyncio
    async def test_fresh_tenant_is_admitted(self, services: PilotServices) -> None:
        decision = await services.admission.can_admit_job(TENANT)
        assert decision.ok
        assert decision.limit is None

    @pytest.mark.asyncio
    async def test_denies_at_hourly_cap(self, services: PilotServices, clock: FrozenClock) -> None:
        await services.ledger.record_job(TENANT)
        clock.advance(minutes=10)
        await services.ledger.record_job(TENANT)

        decision = await services.admission.can_admit_job(TENANT)
        assert not decision.ok
        assert decision.limit == LimitKind.HOURLY_RATE
        assert "2/2" in (decision.reason or "")

    @pytest.mark.asyncio
    async def test_window_slides_rather_than_resetting_on_the_hour(
        self,
        services: PilotServices,
        clock: FrozenClock,
    ) -> None:
        await services.ledger.record_job(TENANT)  # t0
        clock.advance(minutes=50)
        await services.ledger.record_job(TENANT)  # t0 + 50m

        clock.advance(minutes=9)  # t0 + 59m: both still inside the window
        assert not (await services.admission.can_admit_job(TENANT)).ok

        clock.advance(minutes=1)  # t0 + 60m: the first job is exactly one hour old
        assert (await services.admission.can_admit_job(TENANT)).ok

    @pytest.mark.asyncio
    async def test_prune_is_persisted_even_when_denied(self, services: PilotServices, clock: FrozenClock) -> None:
        await services.ledger.record_job(TENANT)
        clock.advance(minutes=10)
        await services.ledger.record_job(TENANT)
        clock.advance(minutes=10)
        await services.ledger.record_job(TENANT)
        clock.advance(minutes=45)

        decision = await services.admission.can_admit_job(TENANT)
        assert decision.limit == LimitKind.HOURLY_RATE

        stored = await UsageRepository(services.store, TENANT).get()
        assert stored is not None
        assert len(stored.job_timestamps) == 2

    @pytest.mark.asyncio
    async def test_subscription_raises_the_hourly_cap(self, services: PilotServices) -> None:
        await services.subscriptions.activate_subscription(TENANT)
        for _ in range(5):
            await services.ledger.record_job(TENANT)
        assert (await services.admission.can_admit_job(TENANT)).ok


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_denies_when_analyzing_count_reaches_cap(self, services: PilotServices) -> None:
        await _seed_case(services, "case-1", CaseStatus.ANALYZING)
        await _seed_case(services, "case-2", CaseStatus.ANALYZING)

        decision = await services.admission.can_admit_job(TENANT)
        assert decision.limit == LimitKind.CONCURRENCY

    @pytest.mark.asyncio
    async def test_concurrency_is_checked_before_rate(self, services: PilotServices) -> None:
        await _seed_case(services, "case-1", CaseStatus.ANALYZING)
        await _seed_case(services, "case-2", CaseStatus.ANALYZING)
        await services.ledger.record_job(TENANT)
        await services.ledger.record_job(TENANT)

        decision = await services.admission.can_admit_job(TENANT)
        assert decision.limit == LimitKind.CONCURRENCY

    @pytest.mark.asyncio
    async def test_finished_and_queued_cases_do_not_count(self, services: PilotServices) -> None:
        await _seed_case(services, "case-1", CaseStatus.DRAFT_READY)
        await _seed_case(services, "case-2", CaseStatus.UPLOAD_RECEIVED)
        await _seed_case(services, "case-3", CaseStatus.ANALYZING)
        assert (await services.admission.can_admit_job(TENANT)).ok

    @pytest.mark.asyncio
    async def test_other_tenants_cases_do_not_count(self, services: PilotServices) -> None:
        for idx in range(3):
            case = Case(
                case_id=f"other-{idx}",
                tenant_id="clinic-b",
                status=CaseStatus.ANALYZING,
                created_at=services.clock.now(),
            )
            await CaseRepository(services.store, "clinic-b").save(case)
        assert (await services.admission.can_admit_job(TENANT)).ok


# ---------------------------------------------------------------------------
# Atomic admit
# ---------------------------------------------------------------------------


class TestTryAdmit:
    @pytest.mark.asyncio
    async def test_admit_records_job_in_same_critical_section(self, services: PilotServices) -> None:
        async with services.locks.hold(TENANT):
            first = await services.admission.try_admit_job_locked(TENANT)
            second = await services.admission.try_admit_job_locked(TENANT)
            third = await services.admission.try_admit_job_locked(TENANT)

        assert first.ok and second.ok
        assert third.limit == LimitKind.HOURLY_RATE
        usage = await services.ledger.get_usage(TENANT)
        assert len(usage.job_timestamps) == 2


# ---------------------------------------------------------------------------
# Trial case cap
# ---------------------------------------------------------------------------


class TestTrialCaseCap:
    @pytest.mark.asyncio
    async def test_trial_denies_at_lifetime_cap(self, services: PilotServices) -> None:
        usage = await services.ledger.get_usage(TENANT)
        usage.trial_cases_used = 25
        await UsageRepository(services.store, TENANT).save(usage)

        decision = await services.admission.pilot_can_create_case(TENANT)
        assert decision.limit == LimitKind.TRIAL_CASES

    @pytest.mark.asyncio
    async def test_trial_allows_below_cap(self, services: PilotServices) -> None:
        usage = await services.ledger.get_usage(TENANT)
        usage.trial_cases_used = 24
        await UsageRepository(services.store, TENANT).save(usage)
        assert (await services.admission.pilot_can_create_case(TENANT)).ok

    @pytest.mark.asyncio
    async def test_subscription_never_blocks_creation(self, services: PilotServices) -> None:
        await services.subscriptions.activate_subscription(TENANT, case_credits_per_period=0)
        usage = await services.ledger.get_usage(TENANT)
        usage.trial_cases_used = 500
        usage.period_case_credits_used = 500
        await UsageRepository(services.store, TENANT).save(usage)
        assert (await services.admission.pilot_can_create_case(TENANT)).ok
