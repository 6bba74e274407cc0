"""Operator endpoints for tenant lifecycle and subscriptions.

Every route requires the ``X-Admin-Token`` header.  Path tenant ids are
operator-supplied, so none of these routes consult the tenant's own access
predicate.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pilot_engine.models import AccountStatus, SubscriptionRecord, Tenant, TrialRecord

from pilot_api.dependencies import ServicesDep, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class RegisterTenantRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=128)
    display_name: str | None = None


class GrantTrialRequest(BaseModel):
    days: int = Field(..., ge=1, le=3650)


class SubscriptionRequest(BaseModel):
    case_credits_per_period: int | None = Field(default=None, ge=0)
    payment_row_credits_per_period: int | None = Field(default=None, ge=0)


class AccountStatusRequest(BaseModel):
    account_status: AccountStatus


class ReapResponse(BaseModel):
    tenant_id: str
    outcome: str


class SweepResponse(BaseModel):
    tenants_scanned: int
    cases_advanced: int
    tenants_purged: int
    outcomes: dict[str, int]
    failed_tenants: list[str]


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


@router.post("/tenants", status_code=201, response_model=Tenant)
async def register_tenant(body: RegisterTenantRequest, services: ServicesDep) -> Tenant:
    return await services.tenants.register_tenant(body.tenant_id, display_name=body.display_name)


@router.get("/tenants", response_model=list[Tenant])
async def list_tenants(services: ServicesDep) -> list[Tenant]:
    return await services.tenants.list_tenants()


@router.put("/tenants/{tenant_id}/status", response_model=Tenant)
async def set_account_status(tenant_id: str, body: AccountStatusRequest, services: ServicesDep) -> Tenant:
    """Block or re-enable a tenant.  Blocking overrides trial and subscription."""
    return await services.tenants.set_account_status(tenant_id, body.account_status)


# ---------------------------------------------------------------------------
# Trial lifecycle
# ---------------------------------------------------------------------------


@router.post("/tenants/{tenant_id}/trial", response_model=TrialRecord)
async def grant_trial(tenant_id: str, body: GrantTrialRequest, services: ServicesDep) -> TrialRecord:
    """Grant, extend, or restart the tenant's trial by ``days``."""
    return await services.trials.grant_or_extend_trial(tenant_id, body.days)


@router.post("/tenants/{tenant_id}/reap", response_model=ReapResponse)
async def reap_tenant(tenant_id: str, services: ServicesDep) -> ReapResponse:
    outcome = await services.trials.reap_expired_tenant(tenant_id)
    return ReapResponse(tenant_id=tenant_id, outcome=outcome.value)


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(services: ServicesDep) -> SweepResponse:
    """Run one lifecycle sweep across every tenant."""
    report = await services.sweeper.run_once()
    return SweepResponse(
        tenants_scanned=report.tenants_scanned,
        cases_advanced=report.cases_advanced,
        tenants_purged=report.tenants_purged,
        outcomes=report.outcomes,
        failed_tenants=report.failed_tenants,
    )


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


@router.put("/tenants/{tenant_id}/subscription", response_model=SubscriptionRecord)
async def activate_subscription(tenant_id: str, body: SubscriptionRequest, services: ServicesDep) -> SubscriptionRecord:
    return await services.subscriptions.activate_subscription(
        tenant_id,
        case_credits_per_period=body.case_credits_per_period,
        payment_row_credits_per_period=body.payment_row_credits_per_period,
    )


@router.delete("/tenants/{tenant_id}/subscription", response_model=SubscriptionRecord)
async def deactivate_subscription(tenant_id: str, services: ServicesDep) -> SubscriptionRecord:
    return await services.subscriptions.deactivate_subscription(tenant_id)
