from app.models.user import User, GroupMembership
from app.models.event import Event, PriorityPool, PriorityPoolGroup
from app.models.registration import Registration, RegistrationStatus
from app.models.strike import Strike
from app.models.notification import Notification

__all__ = [
    "User", "GroupMembership",
    "Event", "PriorityPool", "PriorityPoolGroup",
    "Registration", "RegistrationStatus",
    "Strike",
    "Notification",
]
