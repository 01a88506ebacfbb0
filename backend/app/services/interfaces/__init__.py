"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .event_lock import EventLock
from .local_lock import LocalEventLock
from .notification import NotificationDispatcher

__all__ = ['EventLock', 'LocalEventLock', 'NotificationDispatcher']
