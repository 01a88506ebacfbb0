"""
Resolution outcomes delivered to users through the notification dispatcher.

Each outcome renders its own title and description; the dispatcher decides
where they end up (website inbox, log).
"""

from typing import Literal, Union

from pydantic import BaseModel, Field


class RegisteredOutcome(BaseModel):
    kind: Literal["registered"] = "registered"
    event_name: str
    link: str

    def title(self) -> str:
        return f"You are registered for {self.event_name}!"

    def description(self) -> str:
        return f"Your registration for {self.event_name} is confirmed."


class WaitlistedOutcome(BaseModel):
    kind: Literal["waitlisted"] = "waitlisted"
    event_name: str
    link: str
    position: int = Field(..., ge=1)

    def title(self) -> str:
        return f"You are on the waitlist for {self.event_name}"

    def description(self) -> str:
        return f"You are on the waitlist for {self.event_name} (position {self.position})."


class BlockedOutcome(BaseModel):
    kind: Literal["blocked"] = "blocked"
    event_name: str
    reason: str

    def title(self) -> str:
        return "Registration not accepted"

    def description(self) -> str:
        return f"Your registration for {self.event_name} was not accepted: {self.reason}"


class DisplacedOutcome(BaseModel):
    kind: Literal["displaced"] = "displaced"
    event_name: str
    link: str
    new_position: int = Field(..., ge=1)

    def title(self) -> str:
        return f"Change to your registration for {self.event_name}"

    def description(self) -> str:
        return (
            f"Your registration for {self.event_name} has been moved to the "
            f"waitlist (position {self.new_position})."
        )


NotificationOutcome = Union[RegisteredOutcome, WaitlistedOutcome, BlockedOutcome, DisplacedOutcome]
