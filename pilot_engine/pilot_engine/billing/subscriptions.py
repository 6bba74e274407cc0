"""Subscription management.

An active subscription switches the tenant from trial gating to monthly
credit allotments.  Deactivation keeps the record (status ``inactive``) so
the tenant falls back to trial limits and the trial timeline resumes.
"""

from __future__ import annotations

import logging

from pilot_engine.clock import Clock
from pilot_engine.errors import SubscriptionNotFoundError
from pilot_engine.models import SubscriptionRecord, SubscriptionStatus
from pilot_engine.state.locks import TenantLocks
from pilot_engine.state.repository import SubscriptionRepository, TenantRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Activates, deactivates and reads tenant subscriptions."""

    def __init__(self, store: RecordStore, clock: Clock, locks: TenantLocks) -> None:
        self._store = store
        self._clock = clock
        self._locks = locks

    async def activate_subscription(
        self,
        tenant_id: str,
        *,
        case_credits_per_period: int | None = None,
        payment_row_credits_per_period: int | None = None,
    ) -> SubscriptionRecord:
        """Create or reactivate the subscription, replacing any overrides."""
        async with self._locks.hold(tenant_id):
            now = self._clock.now()
            await TenantRepository(self._store, tenant_id).ensure(now)
            subscription = SubscriptionRecord(
                tenant_id=tenant_id,
                status=SubscriptionStatus.ACTIVE,
                case_credits_per_period=case_credits_per_period,
                payment_row_credits_per_period=payment_row_credits_per_period,
                updated_at=now,
            )
            await SubscriptionRepository(self._store, tenant_id).save(subscription)

        logger.info(
            "Subscription activated: tenant=%s case_credits=%s row_credits=%s",
            tenant_id,
            case_credits_per_period,
            payment_row_credits_per_period,
        )
        return subscription

    async def deactivate_subscription(self, tenant_id: str) -> SubscriptionRecord:
        async with self._locks.hold(tenant_id):
            repo = SubscriptionRepository(self._store, tenant_id)
            subscription = await repo.get()
            if subscription is None:
                raise SubscriptionNotFoundError(tenant_id)
            subscription.status = SubscriptionStatus.INACTIVE
            subscription.updated_at = self._clock.now()
            await repo.save(subscription)

        logger.info("Subscription deactivated: tenant=%s", tenant_id)
        return subscription

    async def get_subscription(self, tenant_id: str) -> SubscriptionRecord | None:
        return await SubscriptionRepository(self._store, tenant_id).get()
