"""Billing-side records: trials, subscriptions, usage counters, plan profiles.

Trial, subscription, usage, and payment-batch records are persisted through
the record store.  :class:`PlanProfile` is derived on every request and never
stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class TrialStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PlanMode(str, Enum):
    TRIAL = "trial"
    SUBSCRIPTION = "subscription"


class TrialRecord(BaseModel):
    """Time-boxed free access window for one tenant.

    ``retention_delete_at`` stays ``None`` until the trial is complete; it is
    then fixed at ``ends_at + retention_days``.  ``purged_at`` is stamped once
    the retention purge has deleted the tenant's data.
    """

    tenant_id: str
    status: TrialStatus = TrialStatus.ACTIVE
    started_at: datetime
    ends_at: datetime
    retention_delete_at: datetime | None = None
    purged_at: datetime | None = None


class SubscriptionRecord(BaseModel):
    """Recurring plan.  ``None`` overrides fall back to tier defaults."""

    tenant_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    case_credits_per_period: int | None = Field(default=None, ge=0)
    payment_row_credits_per_period: int | None = Field(default=None, ge=0)
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class UsageRecord(BaseModel):
    """Per-tenant consumption counters.

    Trial counters survive period rollover and reset only when the trial
    restarts.  Period counters reset whenever ``period_key`` changes.
    ``job_timestamps`` is the sliding-window log for the hourly job cap.
    """

    tenant_id: str
    trial_cases_used: int = 0
    trial_payment_rows_used: int = 0
    period_key: str
    period_case_credits_used: int = 0
    period_case_overage_count: int = 0
    period_payment_rows_used: int = 0
    period_payment_credits_used: int = 0
    job_timestamps: list[datetime] = Field(default_factory=list)

    def reset_period(self, new_key: str) -> None:
        self.period_key = new_key
        self.period_case_credits_used = 0
        self.period_case_overage_count = 0
        self.period_payment_rows_used = 0
        self.period_payment_credits_used = 0


class PaymentBatch(BaseModel):
    """One ingested upload of parsed payment rows."""

    batch_id: str
    tenant_id: str
    row_count: int = Field(..., ge=0)
    credits_charged: int = 0
    case_ids: list[str] = Field(default_factory=list)
    created_at: datetime


class PlanProfile(BaseModel):
    """Effective limits for a tenant at the time of the request."""

    mode: PlanMode
    max_cases_total: int | None = None
    case_credits_per_period: int | None = None
    max_files_per_case: int
    max_file_size_bytes: int
    max_jobs_per_hour: int
    max_concurrent_processing: int
    overage_price_per_case: float
    payment_rows_per_credit: int = Field(..., ge=1)
    included_payment_rows: int | None = None
    payment_row_credits_per_period: int | None = None

    @property
    def is_trial(self) -> bool:
        return self.mode == PlanMode.TRIAL
