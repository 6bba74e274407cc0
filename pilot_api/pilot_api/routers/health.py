"""Liveness probe."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pilot_api import __version__
from pilot_api.dependencies import ServicesDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: ServicesDep) -> dict[str, Any]:
    """Return service health.

    Always answers 200 so load-balancers see the process as alive; the
    ``store`` field reports whether the SQL backend is reachable.
    """
    result: dict[str, Any] = {
        "status": "healthy",
        "version": __version__,
        "store": services.settings.state_store_type.value,
        "db": "ok",
        "sweeper": "running" if services.sweeper.running else "stopped",
    }
    if services.engine is not None:
        try:
            async with services.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("DB health check failed: %s", exc)
            result["db"] = "degraded"
    return result
