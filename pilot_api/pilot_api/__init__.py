"""HTTP surface for the ClaimPilot denial-review pilot."""

__version__ = "0.4.0"
