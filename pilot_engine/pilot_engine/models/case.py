"""Case records tracking one uploaded denial through analysis.

A case moves strictly forward::

    UPLOAD_RECEIVED -> ANALYZING -> DRAFT_READY

Transitions are applied only by :class:`pilot_engine.lifecycle.cases.CaseLifecycle`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class CaseStatus(str, Enum):
    """Lifecycle state of a case."""

    UPLOAD_RECEIVED = "UPLOAD_RECEIVED"
    ANALYZING = "ANALYZING"
    DRAFT_READY = "DRAFT_READY"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER[self]

    @property
    def is_terminal(self) -> bool:
        return self is CaseStatus.DRAFT_READY


_STATUS_ORDER: dict[CaseStatus, int] = {
    CaseStatus.UPLOAD_RECEIVED: 0,
    CaseStatus.ANALYZING: 1,
    CaseStatus.DRAFT_READY: 2,
}


class CaseFile(BaseModel):
    """Metadata for one uploaded document (content lives in file storage)."""

    name: str = Field(..., min_length=1, max_length=255)
    size_bytes: int = Field(..., ge=0)


class DraftResult(BaseModel):
    """Output of the draft generator attached when a case completes."""

    summary: str
    draft_text: str
    category: str
    elapsed_seconds: int = Field(..., ge=1)
    completed_at: datetime


class Case(BaseModel):
    """A submitted denial case owned by exactly one tenant."""

    case_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    status: CaseStatus = CaseStatus.UPLOAD_RECEIVED
    created_at: datetime
    # Per-tenant creation order; breaks created_at ties in the queue.
    seq: int = 0
    ai_started_at: datetime | None = None
    paid: bool = False
    files: list[CaseFile] = Field(default_factory=list)
    notes: str | None = None
    ai: DraftResult | None = None
