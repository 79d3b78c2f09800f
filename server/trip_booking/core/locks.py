"""In-process lock registry for per-trip critical sections."""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

logger = logging.getLogger(__name__)


class TripLockRegistry:
    """
    Hands out one asyncio.Lock per trip.

    Every pool of a trip (the base date and each date variant) shares the
    trip's lock, so waitlist promotion and the release that triggered it run
    in one critical section. Locks are held weakly and disappear once no
    task references them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, trip_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(trip_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[trip_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, trip_id: UUID) -> AsyncIterator[None]:
        """Hold the lock for a trip for the duration of the block."""
        lock = self._lock_for(trip_id)
        async with lock:
            logger.debug("Acquired trip lock", extra={"trip_id": str(trip_id)})
            yield

    def is_locked(self, trip_id: UUID) -> bool:
        """Return True if some task currently holds the trip's lock."""
        lock = self._locks.get(trip_id)
        return lock is not None and lock.locked()
