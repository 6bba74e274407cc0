"""Single-line JSON rendering of API and engine log records.

Enabled with ``API_STRUCTURED_LOGGING=true``.  Engine modules pass case
context through ``extra=`` (``tenant_id``, ``case_id``, ``event`` ...); those
keys are gathered under ``context`` so one query can follow a tenant's cases
across the access log and the lifecycle log.  A line looks like::

    {"ts": "...", "level": "INFO", "logger": "pilot_engine.lifecycle.cases",
     "msg": "Case created", "correlation_id": "6f1c...",
     "context": {"tenant_id": "clinic-a", "case_id": "case-1a2b", "event": "case_created"}}

Access-log lines carry the ``http`` object built by
:class:`~pilot_api.middleware.logging.RequestLoggingMiddleware` instead.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# Attributes lifted from ``extra=`` into the ``context`` object, in output order.
CONTEXT_FIELDS: tuple[str, ...] = (
    "tenant_id",
    "case_id",
    "batch_id",
    "event",
    "status",
    "outcome",
    "limit",
    "code",
)


def _context(record: logging.LogRecord) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is None:
            continue
        context[name] = value.value if isinstance(value, Enum) else value
    return context


def _error_block(record: logging.LogRecord) -> dict[str, str] | None:
    if not record.exc_info or record.exc_info[0] is None:
        return None
    exc_type, exc, tb = record.exc_info
    return {
        "type": exc_type.__name__,
        "message": str(exc),
        "trace": "".join(traceback.format_exception(exc_type, exc, tb)),
    }


class JSONFormatter(logging.Formatter):
    """Render records as JSON lines with ClaimPilot case context."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            line["correlation_id"] = correlation_id

        context = _context(record)
        if context:
            line["context"] = context

        http = getattr(record, "http", None)
        if http is not None:
            line["http"] = http

        error = _error_block(record)
        if error is not None:
            line["error"] = error

        return json.dumps(line, default=str, ensure_ascii=False)
