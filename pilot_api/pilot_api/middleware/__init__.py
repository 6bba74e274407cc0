"""ASGI middleware for the ClaimPilot API."""
