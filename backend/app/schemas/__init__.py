from app.schemas.event import EventResponse, PriorityPoolResponse
from app.schemas.registration import (
    RegistrationCreate, RegistrationResponse, RegistrationListResponse,
    ResolutionSummary, RestageResponse,
)
from app.schemas.notification import (
    RegisteredOutcome, WaitlistedOutcome, BlockedOutcome, DisplacedOutcome,
    NotificationOutcome,
)

__all__ = [
    "EventResponse", "PriorityPoolResponse",
    "RegistrationCreate", "RegistrationResponse", "RegistrationListResponse",
    "ResolutionSummary", "RestageResponse",
    "RegisteredOutcome", "WaitlistedOutcome", "BlockedOutcome", "DisplacedOutcome",
    "NotificationOutcome",
]
