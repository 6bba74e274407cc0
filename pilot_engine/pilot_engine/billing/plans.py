"""Plan resolution: which limit profile applies to a tenant right now.

The profile is never stored.  It is computed on every request from the
subscription record alone:

    active subscription  -> subscription-tier limits (per-field overrides)
    anything else        -> fixed trial-tier limits

Tier defaults::

    trial:         25 cases total, 2 jobs/hour, 2 concurrent, 500 rows included
    subscription:  40 case credits/month, 20 row credits/month, 20 jobs/hour,
                   5 concurrent, 15.00 per overage case
"""

from __future__ import annotations

import logging
from typing import Any

from pilot_engine.models import PlanMode, PlanProfile, SubscriptionRecord
from pilot_engine.state.repository import SubscriptionRepository
from pilot_engine.state.store import RecordStore

logger = logging.getLogger(__name__)

_MIB = 1024 * 1024

# ---------------------------------------------------------------------------
# Tier defaults
# ---------------------------------------------------------------------------

_TRIAL_LIMITS: dict[str, Any] = {
    "max_cases_total": 25,
    "max_files_per_case": 5,
    "max_file_size_bytes": 10 * _MIB,
    "max_jobs_per_hour": 2,
    "max_concurrent_processing": 2,
    "overage_price_per_case": 0.0,
    "payment_rows_per_credit": 100,
    "included_payment_rows": 500,
}

_SUBSCRIPTION_DEFAULTS: dict[str, Any] = {
    "case_credits_per_period": 40,
    "payment_row_credits_per_period": 20,
    "max_files_per_case": 10,
    "max_file_size_bytes": 25 * _MIB,
    "max_jobs_per_hour": 20,
    "max_concurrent_processing": 5,
    "overage_price_per_case": 15.0,
    "payment_rows_per_credit": 100,
}


def trial_profile() -> PlanProfile:
    """Return the fixed trial-tier profile."""
    return PlanProfile(mode=PlanMode.TRIAL, **_TRIAL_LIMITS)


def subscription_profile(subscription: SubscriptionRecord) -> PlanProfile:
    """Return subscription-tier limits with the record's overrides applied.

    Unset (``None``) overrides fall back to the tier default.
    """
    values = dict(_SUBSCRIPTION_DEFAULTS)
    if subscription.case_credits_per_period is not None:
        values["case_credits_per_period"] = subscription.case_credits_per_period
    if subscription.payment_row_credits_per_period is not None:
        values["payment_row_credits_per_period"] = subscription.payment_row_credits_per_period
    return PlanProfile(mode=PlanMode.SUBSCRIPTION, **values)


def profile_for(subscription: SubscriptionRecord | None) -> PlanProfile:
    """Pure mapping from subscription state to the effective profile."""
    if subscription is not None and subscription.is_active:
        return subscription_profile(subscription)
    return trial_profile()


class PlanResolver:
    """Resolves the effective :class:`PlanProfile` for a tenant."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def resolve_limits(self, tenant_id: str) -> PlanProfile:
        """Return the tenant's limits.  Never raises for missing configuration."""
        subscription = await SubscriptionRepository(self._store, tenant_id).get()
        profile = profile_for(subscription)
        logger.debug("Resolved plan for tenant=%s: %s", tenant_id, profile.mode.value)
        return profile
