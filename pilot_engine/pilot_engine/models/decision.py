"""Structured results returned by limit checks."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class LimitKind(str, Enum):
    """Which limit produced a denial."""

    CONCURRENCY = "concurrency"
    HOURLY_RATE = "hourly_rate"
    TRIAL_CASES = "trial_cases"
    FILE_COUNT = "file_count"
    FILE_SIZE = "file_size"
    PAYMENT_ROWS = "payment_rows"


class AdmissionDecision(BaseModel):
    """Outcome of a limit check.

    Denials carry a human-readable ``reason`` intended for the end user and
    the :class:`LimitKind` that tripped.
    """

    ok: bool
    reason: str | None = None
    limit: LimitKind | None = None

    @classmethod
    def allow(cls) -> AdmissionDecision:
        return cls(ok=True)

    @classmethod
    def deny(cls, limit: LimitKind, reason: str) -> AdmissionDecision:
        return cls(ok=False, reason=reason, limit=limit)
