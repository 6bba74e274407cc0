"""Exception hierarchy for engine operations.

Limit checks themselves return :class:`~pilot_engine.models.AdmissionDecision`
values.  Operations that must refuse to proceed raise one of the errors below;
each carries the ``status_code`` the request layer should answer with.
"""

from __future__ import annotations

from pilot_engine.models.decision import AdmissionDecision, LimitKind


class PilotError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500
    code: str = "pilot_error"


class LimitExceededError(PilotError):
    """A consumption limit refused the operation.  Retry later or upgrade."""

    status_code = 429
    code = "limit_exceeded"

    def __init__(self, decision: AdmissionDecision) -> None:
        super().__init__(decision.reason or "Limit exceeded")
        self.decision = decision

    @property
    def limit(self) -> LimitKind | None:
        return self.decision.limit


class AccessDeniedError(PilotError):
    """The tenant's access predicate is false (trial over, suspended, ...)."""

    status_code = 403
    code = "access_denied"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Access is disabled for tenant '{tenant_id}'")
        self.tenant_id = tenant_id


class CaseNotFoundError(PilotError):
    status_code = 404
    code = "case_not_found"

    def __init__(self, tenant_id: str, case_id: str) -> None:
        super().__init__(f"Case '{case_id}' not found for tenant '{tenant_id}'")
        self.tenant_id = tenant_id
        self.case_id = case_id


class TenantNotFoundError(PilotError):
    status_code = 404
    code = "tenant_not_found"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant '{tenant_id}' not found")
        self.tenant_id = tenant_id


class SubscriptionNotFoundError(PilotError):
    status_code = 404
    code = "subscription_not_found"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant '{tenant_id}' has no subscription")
        self.tenant_id = tenant_id
