"""Service container wiring the engine together.

Every service shares one record store, one clock, and one
:class:`~pilot_engine.state.locks.TenantLocks` registry; sharing the lock
registry is what makes the per-tenant critical sections hold across
services.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from pilot_engine.billing.admission import AdmissionController
from pilot_engine.billing.ledger import UsageLedger
from pilot_engine.billing.payments import PaymentIntake
from pilot_engine.billing.plans import PlanResolver
from pilot_engine.billing.subscriptions import SubscriptionService
from pilot_engine.clock import Clock, SystemClock
from pilot_engine.config import Settings, load_settings
from pilot_engine.drafting import DraftGenerator, StubDraftGenerator
from pilot_engine.lifecycle.cases import CaseLifecycle
from pilot_engine.lifecycle.sweeper import LifecycleSweeper
from pilot_engine.lifecycle.tenants import TenantService
from pilot_engine.lifecycle.trial import TrialLifecycle
from pilot_engine.metering import BillingCollector, FileSink, MemorySink
from pilot_engine.state.database import create_tables, dispose_engine, get_engine
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.sql_store import SqlRecordStore
from pilot_engine.state.store import InMemoryRecordStore, RecordStore
from pilot_engine.storage import LocalFileStorage, TenantFileStorage

logger = logging.getLogger(__name__)


@dataclass
class PilotServices:
    """All engine services, sharing one store, clock and lock registry."""

    settings: Settings
    store: RecordStore
    clock: Clock
    locks: TenantLocks
    collector: BillingCollector
    plans: PlanResolver
    ledger: UsageLedger
    admission: AdmissionController
    trials: TrialLifecycle
    cases: CaseLifecycle
    payments: PaymentIntake
    subscriptions: SubscriptionService
    tenants: TenantService
    sweeper: LifecycleSweeper
    engine: AsyncEngine | None = None


def build_services(
    store: RecordStore,
    *,
    settings: Settings | None = None,
    clock: Clock | None = None,
    drafts: DraftGenerator | None = None,
    storage: TenantFileStorage | None = None,
    collector: BillingCollector | None = None,
) -> PilotServices:
    """Wire every service around *store*.

    Unset collaborators default from *settings*: the system clock, the
    template draft generator, local file storage under
    ``file_storage_path``, and a billing collector writing to
    ``metering_file`` (memory only when unset).
    """
    settings = settings or load_settings()
    clock = clock or SystemClock()
    drafts = drafts or StubDraftGenerator()
    storage = storage or LocalFileStorage(settings.file_storage_path)
    if collector is None:
        sink = FileSink(settings.metering_file) if settings.metering_file else MemorySink()
        collector = BillingCollector(sink)

    locks = TenantLocks()
    plans = PlanResolver(store)
    ledger = UsageLedger(store, clock, locks, plans, collector)
    admission = AdmissionController(store, clock, locks, plans, ledger, collector)
    trials = TrialLifecycle(
        store,
        clock,
        locks,
        ledger,
        storage,
        trial_days=settings.trial_days,
        retention_days=settings.retention_days,
        collector=collector,
    )
    cases = CaseLifecycle(
        store,
        clock,
        locks,
        plans,
        ledger,
        admission,
        trials,
        drafts,
        processing_delay_seconds=settings.processing_delay_seconds,
        collector=collector,
    )
    return PilotServices(
        settings=settings,
        store=store,
        clock=clock,
        locks=locks,
        collector=collector,
        plans=plans,
        ledger=ledger,
        admission=admission,
        trials=trials,
        cases=cases,
        payments=PaymentIntake(store, clock, locks, plans, ledger, trials, cases, collector),
        subscriptions=SubscriptionService(store, clock, locks),
        tenants=TenantService(store, clock, locks, trials),
        sweeper=LifecycleSweeper(store, trials, cases, settings.sweep_interval_seconds),
    )


async def open_services(settings: Settings | None = None, *, clock: Clock | None = None) -> PilotServices:
    """Build services with the store selected by ``state_store_type``.

    The SQL store gets its tables created on open.  Pair with
    :func:`close_services`.
    """
    settings = settings or load_settings()
    if not settings.uses_sql_store():
        logger.info("Using in-memory record store")
        return build_services(InMemoryRecordStore(), settings=settings, clock=clock)

    engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    await create_tables(engine)
    services = build_services(SqlRecordStore(engine), settings=settings, clock=clock)
    services.engine = engine
    return services


async def close_services(services: PilotServices) -> None:
    """Stop the sweeper, flush metering, and release the database engine."""
    await services.sweeper.stop()
    flushed = services.collector.flush()
    if flushed:
        logger.info("Flushed %d billing events on shutdown", flushed)
    if services.engine is not None:
        await dispose_engine(services.engine)
        services.engine = None
