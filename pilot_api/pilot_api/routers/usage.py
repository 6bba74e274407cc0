"""Usage counters and the plan currently governing the tenant."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel
from pilot_engine.models import PlanProfile, SubscriptionRecord, TrialRecord, UsageRecord
from pilot_engine.state.repository import SubscriptionRepository, TrialRepository

from pilot_api.dependencies import ServicesDep, TenantDep

router = APIRouter(prefix="/usage", tags=["usage"])


class UsageResponse(BaseModel):
    tenant_id: str
    plan: PlanProfile
    usage: UsageRecord
    payment_row_allowance: int
    trial: TrialRecord | None = None
    subscription: SubscriptionRecord | None = None
    pending_billing_events: int = 0


@router.get("", response_model=UsageResponse)
async def get_usage(services: ServicesDep, tenant_id: TenantDep) -> UsageResponse:
    """Return the usage record after applying any period rollover."""
    usage = await services.ledger.get_usage(tenant_id)
    return UsageResponse(
        tenant_id=tenant_id,
        plan=await services.plans.resolve_limits(tenant_id),
        usage=usage,
        payment_row_allowance=await services.ledger.payment_row_allowance(tenant_id),
        trial=await TrialRepository(services.store, tenant_id).get(),
        subscription=await SubscriptionRepository(services.store, tenant_id).get(),
        pending_billing_events=services.collector.pending_events(tenant_id),
    )
