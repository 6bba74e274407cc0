"""Tests for billing event metering."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from pilot_engine.metering import BillingCollector, BillingEvent, BillingEventType, FileSink, MemorySink

# ---------------------------------------------------------------------------
# BillingEvent
# ---------------------------------------------------------------------------


class TestBillingEvent:
    def test_creates_with_defaults(self) -> None:
        event = BillingEvent(tenant_id="t1", event_type=BillingEventType.CASE_CREATED)
        assert event.quantity == 1
        assert event.amount == 0.0
        assert event.event_id.startswith("bev-")
        assert event.metadata == {}
        assert event.occurred_at.tzinfo is not None

    def test_serializes_to_json(self) -> None:
        event = BillingEvent(tenant_id="t1", event_type=BillingEventType.CASE_OVERAGE, amount=15.0)
        data = json.loads(event.model_dump_json())
        assert data["event_type"] == "case_overage"
        assert data["amount"] == 15.0


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class TestFileSink:
    def test_writes_jsonl(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "billing.jsonl"
        sink = FileSink(path)
        sink.flush(
            [
                BillingEvent(tenant_id="t1", event_type=BillingEventType.CASE_CREATED),
                BillingEvent(tenant_id="t1", event_type=BillingEventType.PAYMENT_ROWS, quantity=40),
            ]
        )

        lines = path.read_text().strip().split("\n")
        assert len(lines) == 2
        assert json.loads(lines[1])["quantity"] == 40

    def test_appends_to_existing(self, tmp_path: Path) -> None:
        sink = FileSink(tmp_path / "billing.jsonl")
        sink.flush([BillingEvent(tenant_id="t1", event_type=BillingEventType.CASE_CREATED)])
        sink.flush([BillingEvent(tenant_id="t1", event_type=BillingEventType.JOB_ADMITTED)])
        assert len((tmp_path / "billing.jsonl").read_text().strip().split("\n")) == 2

    def test_empty_flush_writes_nothing(self, tmp_path: Path) -> None:
        sink = FileSink(tmp_path / "billing.jsonl")
        sink.flush([])
        assert not (tmp_path / "billing.jsonl").exists()


class _BrokenSink:
    def flush(self, events: object) -> None:
        raise OSError("disk full")


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class TestBillingCollector:
    def test_buffers_until_flush(self) -> None:
        sink = MemorySink()
        collector = BillingCollector(sink)
        collector.emit("t1", BillingEventType.CASE_CREATED)
        collector.emit("t1", BillingEventType.CASE_CREATED)

        assert collector.pending_count == 2
        assert sink.events == []
        assert collector.flush() == 2
        assert len(sink.events) == 2
        assert collector.pending_count == 0

    def test_auto_flush_at_buffer_size(self) -> None:
        sink = MemorySink()
        collector = BillingCollector(sink, max_buffer_size=3)
        for _ in range(3):
            collector.emit("t1", BillingEventType.JOB_ADMITTED)
        assert len(sink.events) == 3
        assert collector.pending_count == 0

    def test_pending_summary_by_tenant(self) -> None:
        collector = BillingCollector(MemorySink())
        collector.emit("t1", BillingEventType.PAYMENT_ROWS, quantity=120)
        collector.emit("t1", BillingEventType.PAYMENT_ROWS, quantity=30)
        collector.emit("t2", BillingEventType.CASE_CREATED)

        assert collector.pending_summary("t1") == {"payment_rows": 150}
        assert collector.pending_summary() == {"payment_rows": 150, "case_created": 1}

    def test_pending_events_by_tenant(self) -> None:
        collector = BillingCollector(MemorySink())
        collector.emit("t1", BillingEventType.PAYMENT_ROWS, quantity=120)
        collector.emit("t1", BillingEventType.CASE_CREATED)
        collector.emit("t2", BillingEventType.CASE_CREATED)

        assert collector.pending_events("t1") == 2
        assert collector.pending_events("t2") == 1
        assert collector.pending_events("t3") == 0

    def test_sink_failure_is_logged_not_raised(self) -> None:
        collector = BillingCollector(_BrokenSink())
        collector.emit("t1", BillingEventType.CASE_CREATED)
        assert collector.flush() == 1
        assert collector.pending_count == 0

    def test_thread_safe_emit(self) -> None:
        sink = MemorySink()
        collector = BillingCollector(sink, max_buffer_size=10_000)

        def worker() -> None:
            for _ in range(200):
                collector.emit("t1", BillingEventType.JOB_ADMITTED)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert collector.flush() == 1000
