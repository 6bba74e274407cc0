"""Denial cases: upload, list, and poll.

Reading a case is how it advances through the pipeline, so ``GET`` requests
may change case status.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field
from pilot_engine.models import Case, CaseFile

from pilot_api.dependencies import ServicesDep, TenantDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["cases"])

# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class CreateCaseRequest(BaseModel):
    files: list[CaseFile] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=10_000)


class CaseListResponse(BaseModel):
    cases: list[Case]
    total: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=Case)
async def create_case(body: CreateCaseRequest, services: ServicesDep, tenant_id: TenantDep) -> Case:
    """Open a case; answers 429 when a limit refuses it."""
    return await services.cases.create_case(tenant_id, files=body.files, notes=body.notes)


@router.get("", response_model=CaseListResponse)
async def list_cases(services: ServicesDep, tenant_id: TenantDep) -> CaseListResponse:
    cases = await services.cases.list_cases(tenant_id)
    return CaseListResponse(cases=cases, total=len(cases))


@router.get("/{case_id}", response_model=Case)
async def get_case(case_id: str, services: ServicesDep, tenant_id: TenantDep) -> Case:
    return await services.cases.get_case(tenant_id, case_id)
