"""Pydantic records for tenants, billing state, and cases."""

from pilot_engine.models.billing import (
    PaymentBatch,
    PlanMode,
    PlanProfile,
    SubscriptionRecord,
    SubscriptionStatus,
    TrialRecord,
    TrialStatus,
    UsageRecord,
)
from pilot_engine.models.case import Case, CaseFile, CaseStatus, DraftResult
from pilot_engine.models.decision import AdmissionDecision, LimitKind
from pilot_engine.models.tenant import AccountStatus, Tenant

__all__ = [
    "AccountStatus",
    "AdmissionDecision",
    "Case",
    "CaseFile",
    "CaseStatus",
    "DraftResult",
    "LimitKind",
    "PaymentBatch",
    "PlanMode",
    "PlanProfile",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "Tenant",
    "TrialRecord",
    "TrialStatus",
    "UsageRecord",
]
