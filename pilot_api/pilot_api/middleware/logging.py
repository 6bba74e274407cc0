"""Access logging and correlation ids for the ClaimPilot API.

Every request gets a correlation id (``X-Correlation-ID`` from the client or
a fresh UUID-4).  It is held in a context variable for the request's
duration, so :class:`CorrelationFilter` can stamp it on engine log records
emitted while the request runs, not just on the access line.
"""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("pilot_api.access")

CORRELATION_HEADER: str = "X-Correlation-ID"

# Denials a pilot tenant hits in normal use; logged below warning level.
_EXPECTED_ERROR_CODES: frozenset[str] = frozenset({"limit_exceeded", "access_denied"})

_correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Correlation id of the request being served, or ``""`` outside one."""
    return _correlation_id_var.get()


class CorrelationFilter(logging.Filter):
    """Attach the current ``correlation_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", ""):
            record.correlation_id = _correlation_id_var.get()  # type: ignore[attr-defined]
        return True


def _level_for(status_code: int, error_code: str | None) -> int:
    if status_code >= 500:
        return logging.ERROR
    if error_code in _EXPECTED_ERROR_CODES:
        return logging.INFO
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``pilot_api.access`` line per request.

    The line records the route, status, duration, and the tenant resolved by
    the ``X-Tenant-ID`` dependency.  When an engine error was mapped to a
    response, its ``code`` (``limit_exceeded``, ``access_denied`` ...) is logged as
    ``error_code``; the exception handler leaves it on ``request.state``.
    Header values are never logged.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = _correlation_id_var.set(correlation_id)

        start = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            error_code = getattr(request.state, "error_code", None)
            http: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status": status_code,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
                "tenant_id": getattr(request.state, "tenant_id", None),
                "error_code": error_code,
            }
            logger.log(
                _level_for(status_code, error_code),
                "%s %s -> %d",
                request.method,
                request.url.path,
                status_code,
                extra={"http": http},
            )
            _correlation_id_var.reset(token)
