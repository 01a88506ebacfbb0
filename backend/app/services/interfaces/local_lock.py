"""
In-process lock strategy - one asyncio.Lock per event.
Enough when a single worker process runs the scheduler.
"""

import asyncio

from app.services.interfaces.event_lock import EventLock


class LocalEventLock(EventLock):
    """
    Serializes passes for the same event inside one process.

    Use when:
    - Single API instance runs the scheduler
    - Tests and local development
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}

    async def acquire(self, event_id: int) -> bool:
        lock = self._locks.setdefault(event_id, asyncio.Lock())
        if lock.locked():
            return False
        await lock.acquire()
        return True

    async def release(self, event_id: int):
        lock = self._locks.get(event_id)
        if lock is not None and lock.locked():
            lock.release()
