"""Tenant identity records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AccountStatus(str, Enum):
    """Administrative state of a tenant account."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class Tenant(BaseModel):
    """A customer organisation.

    The plan profile is never stored on the tenant; it is resolved from the
    subscription record on every request.
    """

    tenant_id: str = Field(..., min_length=1, max_length=128)
    display_name: str | None = None
    account_status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime
    # Cases created so far; the next case is numbered case_seq + 1.
    case_seq: int = 0

    @property
    def is_blocked(self) -> bool:
        return self.account_status in (AccountStatus.SUSPENDED, AccountStatus.TERMINATED)
