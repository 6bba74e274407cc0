"""Payment-row intake."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field
from pilot_engine.models import PaymentBatch

from pilot_api.dependencies import ServicesDep, TenantDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class IngestPaymentsRequest(BaseModel):
    row_count: int = Field(..., ge=0)
    case_ids: list[str] = Field(default_factory=list)


class PaymentBatchList(BaseModel):
    batches: list[PaymentBatch]
    total: int


@router.post("", status_code=201, response_model=PaymentBatch)
async def ingest_payments(body: IngestPaymentsRequest, services: ServicesDep, tenant_id: TenantDep) -> PaymentBatch:
    """Record payment rows, charge credits, and mark the listed cases paid."""
    return await services.payments.ingest_payment_rows(tenant_id, body.row_count, case_ids=body.case_ids)


@router.get("", response_model=PaymentBatchList)
async def list_payment_batches(services: ServicesDep, tenant_id: TenantDep) -> PaymentBatchList:
    batches = await services.payments.list_batches(tenant_id)
    return PaymentBatchList(batches=batches, total=len(batches))
