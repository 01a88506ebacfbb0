"""
Notification dispatcher interface.
The resolution engine only knows this contract; delivery is pluggable.
"""

from abc import ABC, abstractmethod

from app.schemas.notification import NotificationOutcome


class NotificationDispatcher(ABC):
    """
    Delivers resolution outcomes to users.

    Implementations may raise; callers treat delivery as fire-and-forget and
    must never let a failure abort a resolution pass.
    """

    @abstractmethod
    async def notify(self, user_id: int, outcome: NotificationOutcome):
        pass
