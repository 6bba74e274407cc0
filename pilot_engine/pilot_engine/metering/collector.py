"""Thread-safe billing event collector with pluggable sinks.

The :class:`BillingCollector` buffers events and hands them to a
:class:`BillingSink` when the buffer fills or :meth:`BillingCollector.flush`
is called.  A sink failure is logged and the batch dropped; metering never
breaks the operation that produced the event.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pilot_engine.metering.events import BillingEvent, BillingEventType

logger = logging.getLogger(__name__)


class BillingSink(Protocol):
    """Protocol for billing event persistence."""

    def flush(self, events: Sequence[BillingEvent]) -> None:
        """Persist a batch of events."""
        ...


class FileSink:
    """Appends events as JSON lines to a local file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def flush(self, events: Sequence[BillingEvent]) -> None:
        if not events:
            return
        with self._path.open("a", encoding="utf-8") as fh:
            for event in events:
                fh.write(event.model_dump_json() + "\n")
        logger.debug("Flushed %d billing events to %s", len(events), self._path)


class MemorySink:
    """Keeps flushed events in a list (tests and local demos)."""

    def __init__(self) -> None:
        self.events: list[BillingEvent] = []

    def flush(self, events: Sequence[BillingEvent]) -> None:
        self.events.extend(events)


class BillingCollector:
    """Buffers :class:`BillingEvent` objects until flushed.

    Parameters
    ----------
    sink:
        Where flushed events go.
    max_buffer_size:
        Buffer length that forces an immediate flush.
    """

    def __init__(self, sink: BillingSink, max_buffer_size: int = 500) -> None:
        self._sink = sink
        self._max_buffer_size = max_buffer_size
        self._buffer: list[BillingEvent] = []
        self._lock = threading.Lock()

    @property
    def sink(self) -> BillingSink:
        return self._sink

    def emit(
        self,
        tenant_id: str,
        event_type: BillingEventType,
        *,
        quantity: int = 1,
        amount: float = 0.0,
        occurred_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BillingEvent:
        """Create and buffer an event in one call."""
        event = BillingEvent(
            tenant_id=tenant_id,
            event_type=event_type,
            quantity=quantity,
            amount=amount,
            metadata=metadata or {},
        )
        if occurred_at is not None:
            event.occurred_at = occurred_at
        with self._lock:
            self._buffer.append(event)
            if len(self._buffer) >= self._max_buffer_size:
                self._flush_locked()
        return event

    def flush(self) -> int:
        """Flush all buffered events; return how many were handed to the sink."""
        with self._lock:
            return self._flush_locked()

    def _flush_locked(self) -> int:
        if not self._buffer:
            return 0
        batch = list(self._buffer)
        self._buffer.clear()
        try:
            self._sink.flush(batch)
        except OSError:
            logger.warning("Billing flush failed; %d events lost", len(batch), exc_info=True)
        return len(batch)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._buffer)

    def pending_events(self, tenant_id: str) -> int:
        """Number of buffered events belonging to *tenant_id*."""
        with self._lock:
            return sum(1 for event in self._buffer if event.tenant_id == tenant_id)

    def pending_summary(self, tenant_id: str | None = None) -> dict[str, int]:
        """Sum buffered quantities by event type, optionally for one tenant."""
        with self._lock:
            summary: dict[str, int] = {}
            for event in self._buffer:
                if tenant_id and event.tenant_id != tenant_id:
                    continue
                key = event.event_type.value
                summary[key] = summary.get(key, 0) + event.quantity
            return summary
