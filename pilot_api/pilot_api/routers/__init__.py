"""API routers for the ClaimPilot service."""
