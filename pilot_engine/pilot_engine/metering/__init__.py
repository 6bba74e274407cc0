"""Billing event metering for case, credit, and payment-row consumption."""

from pilot_engine.metering.collector import BillingCollector, FileSink, MemorySink
from pilot_engine.metering.events import BillingEvent, BillingEventType

__all__ = ["BillingCollector", "BillingEvent", "BillingEventType", "FileSink", "MemorySink"]
