"""
Pydantic schemas for event responses.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PriorityPoolResponse(BaseModel):
    id: int
    priority_score: int
    required_group_slugs: list[str]


class EventResponse(BaseModel):
    id: int
    title: str
    slug: str
    capacity: Optional[int]
    requires_signing_up: bool
    is_registration_closed: bool
    registration_start: Optional[datetime]
    enforces_previous_strikes: bool
    registered_count: int
    waitlisted_count: int
    pending_count: int
    pools: list[PriorityPoolResponse]
