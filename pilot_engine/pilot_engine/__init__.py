"""ClaimPilot engine: tenant usage ledger, admission control, and lifecycles."""

__version__ = "0.4.0"
