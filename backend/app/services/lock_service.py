"""
Shared per-event lock strategies.

A resolution pass for one event must never overlap with another pass for the
same event: both would read the same free-seat count and hand it out twice.
Re-reading each registration row before acting only narrows that window, so
passes take one of these locks first.

Redis lock:
  SET lock:resolution:{event_id} <token> NX PX <timeout>, released with a
  token check. The expiry bounds how long a crashed worker can wedge an event,
  so EVENT_LOCK_TIMEOUT_SECONDS must exceed the longest expected pass.

Advisory lock:
  pg_try_advisory_lock(namespace, event_id) on a dedicated connection held for
  the whole pass. Released explicitly, or by PostgreSQL when the connection
  dies. The pass commits per intent, so a transaction-scoped lock would not
  cover it.
"""

from typing import Optional

import redis.asyncio as redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from app.core.config import get_settings
from app.core.logging import get_logger
from app.infrastructure.redis_client import get_redis
from app.services.interfaces.event_lock import EventLock

logger = get_logger(__name__)

ADVISORY_NAMESPACE = 0x5245  # "RE"


class RedisEventLock(EventLock):
    """
    Redis-based event lock shared by every scheduler process.

    Use when:
    - Several API/worker replicas run the scheduler
    - Redis is already deployed for the intent stage
    """

    def __init__(self, client: Optional[redis.Redis] = None, timeout: Optional[int] = None):
        self.redis = client if client is not None else get_redis()
        self.timeout = timeout or get_settings().EVENT_LOCK_TIMEOUT_SECONDS
        self._held: dict[int, Lock] = {}

    @staticmethod
    def key(event_id: int) -> str:
        return f"lock:resolution:{event_id}"

    async def acquire(self, event_id: int) -> bool:
        lock = self.redis.lock(self.key(event_id), timeout=self.timeout)
        acquired = await lock.acquire(blocking=False)
        if acquired:
            self._held[event_id] = lock
        return bool(acquired)

    async def release(self, event_id: int):
        lock = self._held.pop(event_id, None)
        if lock is None:
            return
        try:
            await lock.release()
        except LockError:
            # Expired mid-pass; another worker may already own the key
            logger.warning("event_lock_expired_before_release", event_id=event_id, timeout=self.timeout)


class AdvisoryEventLock(EventLock):
    """
    PostgreSQL advisory lock per event.

    Use when:
    - Redis is unavailable for locking but the database is shared
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connections: dict[int, AsyncConnection] = {}

    async def acquire(self, event_id: int) -> bool:
        conn = await self.engine.connect()
        try:
            result = await conn.execute(
                text("SELECT pg_try_advisory_lock(:ns, :key)"),
                {"ns": ADVISORY_NAMESPACE, "key": event_id},
            )
            acquired = bool(result.scalar())
        except Exception:
            await conn.close()
            raise

        if not acquired:
            await conn.close()
            return False
        self._connections[event_id] = conn
        return True

    async def release(self, event_id: int):
        conn = self._connections.pop(event_id, None)
        if conn is None:
            return
        try:
            await conn.execute(
                text("SELECT pg_advisory_unlock(:ns, :key)"),
                {"ns": ADVISORY_NAMESPACE, "key": event_id},
            )
        finally:
            await conn.close()
