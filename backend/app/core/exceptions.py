"""
Domain exceptions raised by the resolution layer.

Services raise these; route handlers translate them into HTTPException and the
scheduler logs them and retries on its next tick.
"""


class ResolutionError(Exception):
    """Base class for failures of a resolution pass."""


class EventNotFoundError(ResolutionError):
    def __init__(self, event_id: int):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class EventLockedError(ResolutionError):
    """Another pass currently holds the event's resolution lock."""

    def __init__(self, event_id: int):
        super().__init__(f"Resolution already running for event {event_id}")
        self.event_id = event_id
