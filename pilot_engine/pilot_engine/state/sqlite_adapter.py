"""SQLite backend for single-node and local ClaimPilot deployments.

Same ``records`` table as PostgreSQL; the JSONB payload column degrades to
SQLite JSON text.  ``:memory:`` databases share one connection so every
session sees the same data.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"


def get_local_engine(db_path: Path | str = ".claimpilot/state.db") -> AsyncEngine:
    """Return an ``aiosqlite`` engine for *db_path*, creating parent directories."""
    in_memory = str(db_path) == _MEMORY
    if in_memory:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{_MEMORY}",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(f"sqlite+aiosqlite:///{path}", connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn: object, _record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        if not in_memory:
            # Readers (polling requests) must not block the writer.
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    logger.info("SQLite record store at %s", db_path)
    return engine
