"""
Pydantic schemas for registration requests, responses and pass summaries.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.registration import RegistrationStatus


class RegistrationCreate(BaseModel):
    user_id: int = Field(..., gt=0)


class RegistrationResponse(BaseModel):
    event_id: int
    user_id: int
    status: RegistrationStatus
    waitlist_position: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class RegistrationListResponse(BaseModel):
    event_id: int
    registrations: list[RegistrationResponse]
    total: int


class ResolutionSummary(BaseModel):
    """Counts produced by one resolution pass over an event."""

    event_id: int
    processed: int = 0
    registered: int = 0
    waitlisted: int = 0
    cancelled: int = 0
    swapped: int = 0
    stale: int = 0
    discarded: int = 0


class RestageResponse(BaseModel):
    restaged: int
