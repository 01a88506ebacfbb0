"""
Intent stage: write-ahead buffer of sign-up intents in Redis.

KEY LAYOUT
==========

  registration:{event_id}:{user_id} -> ISO-8601 request instant

The sign-up path inserts a `pending` registration row first and stages the
intent second; the resolution engine deletes the key only after the final
status is committed. A crash anywhere in between leaves a key whose row is no
longer pending, which the next pass discards.

Redis is authoritative for *what is waiting*: errors here propagate instead of
failing open. `restage_pending` rebuilds the stage from the database after a
Redis flush.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_discarded_intent
from app.infrastructure.redis_client import get_redis
from app.models.registration import Registration, RegistrationStatus

logger = get_logger(__name__)

SCAN_BATCH = 500


@dataclass(frozen=True)
class PendingIntent:
    event_id: int
    user_id: int
    requested_at: datetime


def _parse_instant(raw: str) -> datetime:
    # fromisoformat rejects a trailing "Z" before Python 3.11
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(raw))


class IntentStage:
    """Prefix-scannable store of not-yet-resolved registration intents."""

    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        self.redis = client if client is not None else get_redis()
        self.prefix = prefix or get_settings().INTENT_KEY_PREFIX

    def key(self, event_id: int, user_id: int) -> str:
        return f"{self.prefix}:{event_id}:{user_id}"

    async def stage(self, event_id: int, user_id: int, instant: datetime) -> None:
        await self.redis.set(self.key(event_id, user_id), as_utc(instant).isoformat())
        logger.debug("intent_staged", event_id=event_id, user_id=user_id)

    async def scan(self, event_id: int) -> list[PendingIntent]:
        """All intents of one event, oldest first (ties by user id)."""
        keys = [
            key async for key in self.redis.scan_iter(
                match=f"{self.prefix}:{event_id}:*", count=SCAN_BATCH
            )
        ]
        if not keys:
            return []

        values = await self.redis.mget(keys)
        intents = []
        for key, raw in zip(keys, values):
            if raw is None:
                # Deleted between SCAN and MGET
                continue
            try:
                user_id = int(key.rsplit(":", 1)[1])
                requested_at = _parse_instant(raw)
            except ValueError:
                logger.warning("intent_malformed", key=key, value=raw)
                record_discarded_intent("malformed")
                await self.redis.delete(key)
                continue
            intents.append(PendingIntent(event_id, user_id, requested_at))

        intents.sort(key=lambda i: (i.requested_at, i.user_id))
        return intents

    async def clear(self, event_id: int, user_id: int) -> None:
        await self.redis.delete(self.key(event_id, user_id))

    async def count(self, event_id: Optional[int] = None) -> int:
        match = f"{self.prefix}:{event_id}:*" if event_id is not None else f"{self.prefix}:*"
        total = 0
        async for _ in self.redis.scan_iter(match=match, count=SCAN_BATCH):
            total += 1
        return total

    async def events_with_intents(self) -> set[int]:
        """Event ids that currently have at least one staged intent."""
        event_ids = set()
        async for key in self.redis.scan_iter(match=f"{self.prefix}:*", count=SCAN_BATCH):
            parts = key.split(":")
            if len(parts) != 3:
                continue
            try:
                event_ids.add(int(parts[1]))
            except ValueError:
                logger.warning("intent_key_unparseable", key=key)
        return event_ids

    async def restage_pending(self, db: AsyncSession) -> int:
        """
        Stage every pending registration row that has no intent key.
        Existing keys are left alone so original instants are never rewritten.
        """
        result = await db.execute(
            select(Registration).where(Registration.status == RegistrationStatus.PENDING.value)
        )
        restaged = 0
        for registration in result.scalars():
            created = await self.redis.set(
                self.key(registration.event_id, registration.user_id),
                as_utc(registration.created_at).isoformat(),
                nx=True,
            )
            if created:
                restaged += 1

        logger.info("intents_restaged", restaged=restaged)
        return restaged
