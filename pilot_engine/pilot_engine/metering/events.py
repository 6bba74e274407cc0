"""Billable event definitions.

Each event records something downstream billing may charge for or report
on: case creation, a case-credit overage, payment rows ingested, a job
admitted to analysis, a completed draft, or a tenant purge.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class BillingEventType(str, Enum):
    """Types of metered events."""

    CASE_CREATED = "case_created"
    CASE_OVERAGE = "case_overage"
    PAYMENT_ROWS = "payment_rows"
    JOB_ADMITTED = "job_admitted"
    DRAFT_COMPLETED = "draft_completed"
    TENANT_PURGED = "tenant_purged"


class BillingEvent(BaseModel):
    """A single metered occurrence for one tenant.

    Attributes
    ----------
    tenant_id:
        The tenant that generated this event.
    event_type:
        What happened.
    quantity:
        Units consumed (cases, rows, credits).
    amount:
        Monetary amount attached to the event, e.g. the overage price.
    metadata:
        Additional context (case id, batch id, plan mode).
    """

    event_id: str = Field(default_factory=lambda: f"bev-{uuid.uuid4().hex[:12]}")
    tenant_id: str
    event_type: BillingEventType
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    quantity: int = 1
    amount: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
