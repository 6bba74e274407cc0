"""Per-tenant mutual exclusion for read-modify-write sequences.

Admission (check + record job), credit consumption, case transitions, and
the retention purge all mutate shared per-tenant documents.  Each of those
sequences runs while holding the tenant's lock so that two concurrent
requests for the same tenant cannot both observe the last free slot.
Different tenants never contend.

.. warning:: **Single-replica limitation**

   Locks are held in process-local memory.  Several API replicas sharing
   one PostgreSQL store would each serialise only their own requests.  A
   multi-replica deployment needs a shared lock keyed the same way, e.g.
   ``pg_advisory_xact_lock(hash(tenant_id))`` held for the duration of the
   sequence.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class TenantLocks:
    """Registry of one :class:`asyncio.Lock` per tenant id.

    Locks are not re-entrant.  Public service methods acquire the lock;
    methods suffixed ``_locked`` assume the caller already holds it.
    An entry lives only while some task holds or awaits the lock, so the
    registry does not grow with the number of tenants ever seen.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        """Hold *tenant_id*'s lock for the duration of the ``async with`` block."""
        lock = self._lock_for(tenant_id)
        async with lock:
            yield
