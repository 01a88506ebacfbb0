"""
Registration resolution engine.

RESOLUTION PASS
===============

One pass turns every staged intent of one event into a final status:

  1. Lock the event (no overlapping passes for the same event)
  2. Scan the intent stage, oldest request first
  3. Load the event and its priority pools; closed events drop their intents
  4. Seed an in-memory arena with the event's resolved registrations
  5. For each intent:
       re-read the row           -> not pending? stale, drop the intent
       strike gate               -> too early? cancelled + notify
       free seat                 -> registered
       full, prioritized         -> displace the first non-prioritized
                                    registered user, or waitlist
       full, not prioritized     -> waitlisted
     commit status and waitlist positions together, notify, then delete the
     intent

Ordering guarantees:
  - Intents are handled strictly one at a time in request order, so the
    earliest requester always wins a contested seat
  - The strike gate uses the original request instant, so a delayed pass
    cannot block or unblock anyone
  - An intent is deleted only after its status is committed. A crash in
    between leaves an intent whose row is no longer pending, which the next
    pass discards (idempotent re-runs)

Failures:
  - EventNotFoundError / EventLockedError propagate to the caller
  - Database errors propagate; earlier commits in the pass stay valid and the
    failing intent remains staged for the next pass
  - Notification failures are logged and never abort the pass
"""

import time
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import EventLockedError, EventNotFoundError
from app.core.logging import get_logger
from app.core.metrics import (
    record_discarded_intent,
    record_resolution_pass,
    record_resolved,
    registration_swaps,
    resolution_latency,
)
from app.models.event import Event
from app.models.registration import Registration, RegistrationStatus
from app.schemas.notification import (
    BlockedOutcome,
    DisplacedOutcome,
    RegisteredOutcome,
    WaitlistedOutcome,
)
from app.schemas.registration import ResolutionSummary
from app.services.intent_stage import IntentStage, PendingIntent
from app.services.interfaces.event_lock import EventLock
from app.services.interfaces.notification import NotificationDispatcher
from app.services.notification_service import dispatch_notification
from app.services.priority import PrioritizationCache, SwapOrder, find_swap_target
from app.services.registration_arena import ArenaEntry, RegistrationArena
from app.services.strikes import can_register_based_on_strikes
from app.services.waitlist import rank_waitlist

logger = get_logger(__name__)


def event_link(event: Event) -> str:
    return f"{get_settings().ROOT_URL}/events/{event.slug}"


async def load_event(db: AsyncSession, event_id: int) -> Event:
    # Fresh read: the closed flag and pools may have changed since the session last saw them
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise EventNotFoundError(event_id)
    return event


class RegistrationResolver:
    """Resolves the sorted intents of one open event. Not reusable across passes."""

    def __init__(
        self,
        db: AsyncSession,
        event: Event,
        stage: IntentStage,
        dispatcher: NotificationDispatcher,
        swap_order: SwapOrder,
    ):
        self.db = db
        # Copied out so later commits never trigger a reload of the event
        self.event_id = event.id
        self.event_title = event.title
        self.capacity = event.capacity
        self.registration_start = event.registration_start
        self.stage = stage
        self.dispatcher = dispatcher
        self.swap_order = swap_order
        self.link = event_link(event)
        self.summary = ResolutionSummary(event_id=event.id)
        self.cache = PrioritizationCache(
            db,
            [pool.required_group_slugs for pool in event.pools],
            event.enforces_previous_strikes,
        )
        self.arena = RegistrationArena(event.id)
        self.rows: dict[int, Registration] = {}
        self.available: Optional[int] = None

    async def run(self, intents: list[PendingIntent]) -> ResolutionSummary:
        result = await self.db.execute(
            select(Registration).where(
                Registration.event_id == self.event_id,
                Registration.status != RegistrationStatus.PENDING.value,
            )
        )
        resolved = list(result.scalars())
        self.rows = {row.user_id: row for row in resolved}
        self.arena = RegistrationArena.from_registrations(self.event_id, resolved)

        if self.capacity is not None:
            self.available = max(0, self.capacity - self.arena.registered_count)

        logger.info(
            "resolution_pass_started",
            intents=len(intents),
            capacity=self.capacity,
            registered=self.arena.registered_count,
            available=self.available,
        )

        for intent in intents:
            await self.resolve_intent(intent)
        return self.summary

    async def resolve_intent(self, intent: PendingIntent) -> None:
        user_id = intent.user_id
        registration = await self.db.get(
            Registration, (self.event_id, user_id), populate_existing=True
        )
        if registration is None or registration.status != RegistrationStatus.PENDING.value:
            await self.stage.clear(self.event_id, user_id)
            record_discarded_intent("stale")
            self.summary.stale += 1
            logger.info(
                "intent_stale",
                user_id=user_id,
                status=registration.status if registration else None,
            )
            return

        self.summary.processed += 1
        profile = await self.cache.profile(user_id)

        gate = can_register_based_on_strikes(
            profile.strike_count, self.registration_start, intent.requested_at
        )
        if not gate.allowed:
            await self._block(registration, intent, gate.reason)
            return

        prioritized = await self.cache.is_prioritized(user_id)
        swapped: Optional[ArenaEntry] = None

        if self.available is None or self.available > 0:
            status = RegistrationStatus.REGISTERED
            if self.available is not None:
                self.available -= 1
        elif prioritized:
            swapped = await find_swap_target(self.arena.registered(), self.cache, self.swap_order)
            status = RegistrationStatus.REGISTERED if swapped else RegistrationStatus.WAITLISTED
        else:
            status = RegistrationStatus.WAITLISTED

        # Snapshot first, so ranking below sees this decision
        if swapped is not None:
            self.arena.demote(swapped.user_id)
            self.rows[swapped.user_id].status = RegistrationStatus.WAITLISTED.value
        self.arena.put(user_id, status, intent.requested_at)
        self.rows[user_id] = registration

        registration.status = status.value
        registration.waitlist_position = None
        if status == RegistrationStatus.WAITLISTED or swapped is not None:
            await self._rerank_waitlist()

        await self.db.commit()

        record_resolved(status.value)
        if status == RegistrationStatus.REGISTERED:
            self.summary.registered += 1
        else:
            self.summary.waitlisted += 1

        position = self.arena.get(user_id).waitlist_position
        logger.info(
            "registration_resolved",
            user_id=user_id,
            status=status.value,
            prioritized=prioritized,
            waitlist_position=position,
        )

        if status == RegistrationStatus.REGISTERED:
            outcome = RegisteredOutcome(event_name=self.event_title, link=self.link)
        else:
            outcome = WaitlistedOutcome(event_name=self.event_title, link=self.link, position=position)
        await dispatch_notification(self.dispatcher, user_id, outcome)

        if swapped is not None:
            await self._notify_displaced(swapped, by_user_id=user_id)

        await self.stage.clear(self.event_id, user_id)

    async def _block(self, registration: Registration, intent: PendingIntent, reason: str) -> None:
        registration.status = RegistrationStatus.CANCELLED.value
        registration.waitlist_position = None
        await self.db.commit()

        self.arena.put(intent.user_id, RegistrationStatus.CANCELLED, intent.requested_at)
        self.rows[intent.user_id] = registration
        self.summary.cancelled += 1
        record_resolved(RegistrationStatus.CANCELLED.value)
        logger.info("registration_blocked", user_id=intent.user_id, reason=reason)

        await dispatch_notification(
            self.dispatcher,
            intent.user_id,
            BlockedOutcome(event_name=self.event_title, reason=reason),
        )
        await self.stage.clear(self.event_id, intent.user_id)

    async def _rerank_waitlist(self) -> None:
        """Renumber the whole waitlist and write back only positions that moved."""
        waitlisted = self.arena.waitlisted()
        prioritized = await self.cache.prioritized_among(e.user_id for e in waitlisted)
        changed = self.arena.apply_positions(rank_waitlist(waitlisted, prioritized))
        for user_id, position in changed.items():
            self.rows[user_id].waitlist_position = position
        if changed:
            logger.debug("waitlist_reranked", size=len(waitlisted), moved=len(changed))

    async def _notify_displaced(self, swapped: ArenaEntry, by_user_id: int) -> None:
        self.summary.swapped += 1
        registration_swaps.inc()
        logger.info(
            "registration_swapped",
            user_id=swapped.user_id,
            prioritized_user_id=by_user_id,
            waitlist_position=swapped.waitlist_position,
        )
        await dispatch_notification(
            self.dispatcher,
            swapped.user_id,
            DisplacedOutcome(
                event_name=self.event_title,
                link=self.link,
                new_position=swapped.waitlist_position,
            ),
        )


async def _resolve_locked(
    db: AsyncSession,
    event_id: int,
    stage: IntentStage,
    dispatcher: NotificationDispatcher,
    swap_order: SwapOrder,
) -> tuple[ResolutionSummary, str]:
    intents = await stage.scan(event_id)
    if not intents:
        return ResolutionSummary(event_id=event_id), "empty"

    event = await load_event(db, event_id)

    if not event.requires_signing_up or event.is_registration_closed:
        for intent in intents:
            await stage.clear(event_id, intent.user_id)
            record_discarded_intent("closed")
        logger.info("intents_discarded_event_closed", discarded=len(intents))
        return ResolutionSummary(event_id=event_id, discarded=len(intents)), "closed"

    resolver = RegistrationResolver(db, event, stage, dispatcher, swap_order)
    return await resolver.run(intents), "completed"


async def resolve_registrations_for_event(
    db: AsyncSession,
    event_id: int,
    *,
    stage: IntentStage,
    lock: EventLock,
    dispatcher: NotificationDispatcher,
    swap_order: Optional[SwapOrder] = None,
) -> ResolutionSummary:
    """
    Resolve every staged intent of one event.
    Raises EventLockedError if another pass owns the event.
    """
    swap_order = swap_order or get_settings().SWAP_TARGET_ORDER
    start_time = time.perf_counter()

    with structlog.contextvars.bound_contextvars(event_id=event_id):
        try:
            async with lock.hold(event_id):
                summary, result = await _resolve_locked(db, event_id, stage, dispatcher, swap_order)
        except EventLockedError:
            record_resolution_pass("locked")
            logger.info("resolution_skipped_locked")
            raise
        except Exception:
            record_resolution_pass("error")
            raise

        duration = time.perf_counter() - start_time
        resolution_latency.observe(duration)
        record_resolution_pass(result)
        if result != "empty":
            logger.info(
                "resolution_pass_completed",
                result=result,
                duration_ms=round(duration * 1000, 2),
                **summary.model_dump(exclude={"event_id"}),
            )
        return summary
