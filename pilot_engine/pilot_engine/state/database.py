"""Engine and session plumbing for the SQL record store.

The URL scheme picks the backend: ``postgresql+asyncpg://`` gets a pooled
engine, ``sqlite+aiosqlite://`` is handed to :mod:`.sqlite_adapter`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

# One session factory per engine; dropped by dispose_engine().
_factories: dict[Engine, async_sessionmaker[AsyncSession]] = {}


def get_engine(database_url: str, pool_size: int = 10, max_overflow: int = 20) -> AsyncEngine:
    """Build an async engine for *database_url*.

    Pool sizing applies to PostgreSQL only.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        from pilot_engine.state.sqlite_adapter import get_local_engine

        return get_local_engine(url.database or ":memory:")

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        # Ledger writes are short; a stuck row lock should fail the request.
        connect_args={"server_settings": {"lock_timeout": "10000"}},
    )
    logger.info("Record store engine ready: %s (pool_size=%d)", url.render_as_string(hide_password=True), pool_size)
    return engine


async def create_tables(engine: AsyncEngine) -> None:
    """Create the ``records`` table if missing."""
    from pilot_engine.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Record store schema ensured")


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    factory = _factories.get(engine.sync_engine)
    if factory is None:
        factory = _factories[engine.sync_engine] = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine(engine: AsyncEngine) -> None:
    _factories.pop(engine.sync_engine, None)
    await engine.dispose()
