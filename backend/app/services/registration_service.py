"""
Sign-up write path and registration queries.

Sign-up never decides a seat. It records a `pending` row, commits it, and only
then stages the intent, so the database always shows the pending row before
any resolution pass can see the intent.
"""

from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.logging import get_logger
from app.models.event import Event
from app.models.registration import Registration, RegistrationStatus
from app.services.intent_stage import IntentStage

logger = get_logger(__name__)


async def sign_up(
    db: AsyncSession,
    stage: IntentStage,
    event_id: int,
    user_id: int,
) -> tuple[Registration, bool]:
    """
    Record a user's intent to attend an event.
    Returns (registration, created). Raises 404 if the event does not exist.
    """
    event = await db.get(Event, event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )

    existing = await db.get(Registration, (event_id, user_id))
    if existing is not None:
        return existing, False

    requested_at = utcnow()
    registration = Registration(
        event_id=event_id,
        user_id=user_id,
        status=RegistrationStatus.PENDING.value,
        created_at=requested_at,
    )
    db.add(registration)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent sign-up for the same pair won the insert
        await db.rollback()
        existing = await db.get(Registration, (event_id, user_id), populate_existing=True)
        if existing is None:
            raise
        return existing, False

    await stage.stage(event_id, user_id, requested_at)
    logger.info("registration_intent_accepted", event_id=event_id, user_id=user_id)
    return registration, True


async def get_registration(db: AsyncSession, event_id: int, user_id: int) -> Registration:
    registration = await db.get(Registration, (event_id, user_id))
    if registration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registration not found",
        )
    return registration


async def list_registrations(
    db: AsyncSession,
    event_id: int,
    status_filter: Optional[RegistrationStatus] = None,
) -> list[Registration]:
    """Registrations of an event: waitlist by position, everything else FIFO."""
    query = select(Registration).where(Registration.event_id == event_id)
    if status_filter is not None:
        query = query.where(Registration.status == status_filter.value)

    result = await db.execute(
        query.order_by(
            Registration.waitlist_position.is_(None),
            Registration.waitlist_position.asc(),
            Registration.created_at.asc(),
            Registration.user_id.asc(),
        )
    )
    return list(result.scalars().all())
