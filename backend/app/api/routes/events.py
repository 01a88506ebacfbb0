"""
Event registration endpoints: sign-up, status queries and manual resolution.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import EventLockedError, EventNotFoundError
from app.core.logging import get_logger
from app.db.session import get_db
from app.models.registration import RegistrationStatus
from app.schemas.event import EventResponse
from app.schemas.registration import (
    RegistrationCreate,
    RegistrationListResponse,
    RegistrationResponse,
    ResolutionSummary,
)
from app.services.event_service import describe_event
from app.services.intent_stage import IntentStage
from app.services.interfaces.event_lock import EventLock
from app.services.interfaces.notification import NotificationDispatcher
from app.services.registration_service import get_registration, list_registrations, sign_up
from app.services.resolution_service import resolve_registrations_for_event
from app.services.strategy_factory import (
    get_event_lock,
    get_intent_stage,
    get_notification_dispatcher,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Event with its pools and live registration counts."""
    return await describe_event(db, event_id)


@router.post(
    "/{event_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_registration_endpoint(
    event_id: int,
    registration_data: RegistrationCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    stage: IntentStage = Depends(get_intent_stage),
):
    """
    Ask to attend an event.

    Always accepted immediately as `pending`; the outcome (seat, waitlist or
    rejection) is decided by the next resolution pass and delivered as a
    notification. Signing up twice returns the existing registration.
    """
    registration, created = await sign_up(db, stage, event_id, registration_data.user_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return registration


@router.get("/{event_id}/registrations", response_model=RegistrationListResponse)
async def list_registrations_endpoint(
    event_id: int,
    status_filter: Optional[RegistrationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """Registrations of an event; the waitlist comes back in position order."""
    registrations = await list_registrations(db, event_id, status_filter)
    return RegistrationListResponse(
        event_id=event_id,
        registrations=[RegistrationResponse.model_validate(r) for r in registrations],
        total=len(registrations),
    )


@router.get("/{event_id}/registrations/{user_id}", response_model=RegistrationResponse)
async def get_registration_endpoint(
    event_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_registration(db, event_id, user_id)


@router.post("/{event_id}/resolve", response_model=ResolutionSummary)
async def resolve_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    stage: IntentStage = Depends(get_intent_stage),
    lock: EventLock = Depends(get_event_lock),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Run a resolution pass now instead of waiting for the scheduler."""
    try:
        return await resolve_registrations_for_event(
            db, event_id, stage=stage, lock=lock, dispatcher=dispatcher
        )
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except EventLockedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
