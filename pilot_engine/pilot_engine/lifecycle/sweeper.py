"""Background sweep applying lazy transitions across all tenants.

Lazy transitions only fire when someone observes a tenant.  The sweeper
observes every known tenant on an interval so queued cases start, drafts
complete, and expired tenants are purged even without traffic.  Each pass
calls the same idempotent operations a request would.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from pilot_engine.lifecycle.cases import CaseLifecycle
from pilot_engine.lifecycle.trial import ReapOutcome, TrialLifecycle
from pilot_engine.state.repository import TenantRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Counts from one :meth:`LifecycleSweeper.run_once` pass."""

    tenants_scanned: int = 0
    cases_advanced: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    failed_tenants: list[str] = field(default_factory=list)

    @property
    def tenants_purged(self) -> int:
        return self.outcomes.get(ReapOutcome.PURGED.value, 0)


class LifecycleSweeper:
    """AsyncIO background task for periodic lifecycle sweeps.

    Parameters
    ----------
    store:
        Record store used to enumerate tenants.
    trials:
        Trial lifecycle performing the retention reap.
    cases:
        Case lifecycle advancing open cases.
    interval_seconds:
        Pause between passes when running in the background.
    """

    def __init__(
        self,
        store: RecordStore,
        trials: TrialLifecycle,
        cases: CaseLifecycle,
        interval_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._trials = trials
        self._cases = cases
        self._interval = interval_seconds
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> SweepReport:
        """Reap and advance every tenant once.

        Store errors for one tenant are logged and the pass moves on to the
        next tenant.  Any other error propagates.
        """
        report = SweepReport()
        for tenant in await TenantRepository.list_all(self._store):
            tenant_id = tenant.tenant_id
            report.tenants_scanned += 1
            try:
                outcome = await self._trials.reap_expired_tenant(tenant_id)
                report.outcomes[outcome.value] = report.outcomes.get(outcome.value, 0) + 1
                if outcome not in (ReapOutcome.PURGED, ReapOutcome.ALREADY_PURGED):
                    report.cases_advanced += await self._cases.advance_open_cases(tenant_id)
            except (SQLAlchemyError, OSError) as exc:
                logger.error(
                    "Sweep failed for tenant=%s: %s",
                    tenant_id,
                    exc,
                    exc_info=True,
                    extra={"tenant_id": tenant_id},
                )
                report.failed_tenants.append(tenant_id)

        logger.info(
            "Lifecycle sweep complete: tenants=%d cases_advanced=%d purged=%d failed=%d",
            report.tenants_scanned,
            report.cases_advanced,
            report.tenants_purged,
            len(report.failed_tenants),
        )
        return report

    async def start(self) -> None:
        """Start the sweep background task."""
        if self._running:
            logger.warning("LifecycleSweeper already running; ignoring start()")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("LifecycleSweeper started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the sweeper gracefully.

        A loop that already died is reaped here and its error logged, so
        shutdown always completes.
        """
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.error("LifecycleSweeper task had failed: %s", exc)
            self._task = None
        logger.info("LifecycleSweeper stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except (SQLAlchemyError, OSError) as exc:
                # Tenant enumeration failed; retry on the next interval.
                logger.error("LifecycleSweeper pass failed: %s", exc, exc_info=True)
            except Exception as exc:
                logger.critical("LifecycleSweeper unexpected error: %s", exc, exc_info=True)
                self._running = False
                raise
            await asyncio.sleep(self._interval)
