"""
Event read operations.
"""

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.event import Event
from app.models.registration import Registration, RegistrationStatus
from app.schemas.event import EventResponse, PriorityPoolResponse


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def count_by_status(db: AsyncSession, event_id: int) -> dict[str, int]:
    result = await db.execute(
        select(Registration.status, func.count())
        .where(Registration.event_id == event_id)
        .group_by(Registration.status)
    )
    return {row[0]: row[1] for row in result.all()}


async def describe_event(db: AsyncSession, event_id: int) -> EventResponse:
    event = await get_event(db, event_id)
    counts = await count_by_status(db, event_id)

    return EventResponse(
        id=event.id,
        title=event.title,
        slug=event.slug,
        capacity=event.capacity,
        requires_signing_up=event.requires_signing_up,
        is_registration_closed=event.is_registration_closed,
        registration_start=event.registration_start,
        enforces_previous_strikes=event.enforces_previous_strikes,
        registered_count=counts.get(RegistrationStatus.REGISTERED.value, 0),
        waitlisted_count=counts.get(RegistrationStatus.WAITLISTED.value, 0),
        pending_count=counts.get(RegistrationStatus.PENDING.value, 0),
        pools=[
            PriorityPoolResponse(
                id=pool.id,
                priority_score=pool.priority_score,
                required_group_slugs=sorted(pool.required_group_slugs),
            )
            for pool in event.pools
        ],
    )
