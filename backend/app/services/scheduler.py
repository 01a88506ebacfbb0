"""
Resolution scheduler: per-event task queue in front of the engine.

A discovery tick every RESOLVER_INTERVAL_SECONDS scans the intent stage for
events with staged intents and enqueues each event id at most once. Workers
take ids off the queue and run one pass each, in a fresh session, under the
event lock. Different events resolve concurrently; the same event never does.

Errors are per event: a failing pass is logged and the event is picked up
again on a later tick because its intents are still staged.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import EventLockedError
from app.core.logging import get_logger
from app.core.metrics import scheduler_queue_depth
from app.schemas.registration import ResolutionSummary
from app.services.intent_stage import IntentStage
from app.services.interfaces.event_lock import EventLock
from app.services.interfaces.notification import NotificationDispatcher
from app.services.resolution_service import resolve_registrations_for_event

logger = get_logger(__name__)


class ResolutionScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stage: IntentStage,
        lock: EventLock,
        dispatcher: NotificationDispatcher,
        interval: Optional[float] = None,
        workers: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.stage = stage
        self.lock = lock
        self.dispatcher = dispatcher
        self.interval = interval if interval is not None else settings.RESOLVER_INTERVAL_SECONDS
        self.worker_count = workers if workers is not None else settings.RESOLVER_WORKERS
        self.queue: asyncio.Queue[int] = asyncio.Queue()
        self._queued: set[int] = set()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def enqueue(self, event_id: int) -> bool:
        """Queue an event unless it is already waiting. Returns True if queued."""
        if event_id in self._queued:
            return False
        self._queued.add(event_id)
        self.queue.put_nowait(event_id)
        scheduler_queue_depth.set(self.queue.qsize())
        return True

    async def discover(self) -> int:
        """One discovery tick. Returns the number of newly queued events."""
        event_ids = await self.stage.events_with_intents()
        queued = sum(1 for event_id in sorted(event_ids) if self.enqueue(event_id))
        if queued:
            logger.info("resolution_events_queued", events=queued)
        return queued

    async def run_once(self, event_id: int) -> Optional[ResolutionSummary]:
        """Resolve one event; errors are logged, never raised."""
        try:
            async with self.session_factory() as session:
                return await resolve_registrations_for_event(
                    session,
                    event_id,
                    stage=self.stage,
                    lock=self.lock,
                    dispatcher=self.dispatcher,
                )
        except EventLockedError:
            return None
        except Exception:
            logger.exception("resolution_pass_failed", event_id=event_id)
            return None

    async def drain(self) -> None:
        """Resolve everything currently queued, sequentially. Used by tests and one-shot runs."""
        while not self.queue.empty():
            event_id = self.queue.get_nowait()
            self._queued.discard(event_id)
            await self.run_once(event_id)
            self.queue.task_done()
        scheduler_queue_depth.set(0)

    async def _worker(self) -> None:
        while True:
            event_id = await self.queue.get()
            self._queued.discard(event_id)
            scheduler_queue_depth.set(self.queue.qsize())
            try:
                await self.run_once(event_id)
            finally:
                self.queue.task_done()

    async def _ticker(self) -> None:
        while True:
            try:
                await self.discover()
            except Exception:
                logger.exception("resolution_discovery_failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._ticker(), name="resolution-ticker")]
        self._tasks += [
            asyncio.create_task(self._worker(), name=f"resolution-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("resolution_scheduler_started", interval=self.interval, workers=self.worker_count)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("resolution_scheduler_stopped")
