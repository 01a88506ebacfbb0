"""
Per-event lock strategy interface.
Allows swapping between different mutual-exclusion backends.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.core.exceptions import EventLockedError
from app.core.metrics import event_lock_contention


class EventLock(ABC):
    """
    Interface for per-event resolution locks.

    Implementations:
    - LocalEventLock: asyncio.Lock per event, single process only
    - RedisEventLock: Redis lock with expiry, shared by all workers
    - AdvisoryEventLock: PostgreSQL session advisory lock keyed by event id

    Acquisition never waits: if another pass owns the event, that pass will
    see every intent staged before it scanned, and anything later is picked
    up on the next tick.
    """

    @abstractmethod
    async def acquire(self, event_id: int) -> bool:
        """
        Try to take the lock for an event.

        Returns:
            True if acquired
            False if another pass holds it
        """
        pass

    @abstractmethod
    async def release(self, event_id: int):
        """Release a lock previously acquired by this instance."""
        pass

    @asynccontextmanager
    async def hold(self, event_id: int) -> AsyncIterator[None]:
        if not await self.acquire(event_id):
            event_lock_contention.inc()
            raise EventLockedError(event_id)
        try:
            yield
        finally:
            await self.release(event_id)
