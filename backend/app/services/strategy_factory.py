"""
Collaborator factory for the resolution engine.
Configures which lock strategy and notification channel to use.
"""

from typing import Optional

from app.core.config import get_settings
from app.db.session import SessionLocal, engine
from app.services.intent_stage import IntentStage
from app.services.interfaces.event_lock import EventLock
from app.services.interfaces.local_lock import LocalEventLock
from app.services.interfaces.notification import NotificationDispatcher
from app.services.lock_service import AdvisoryEventLock, RedisEventLock
from app.services.notification_service import (
    DatabaseNotificationDispatcher,
    LoggingNotificationDispatcher,
)


def get_event_lock_strategy() -> EventLock:
    """
    Get configured event lock.

    - local: single process (development, tests)
    - redis: shared across replicas (default)
    - advisory: PostgreSQL advisory locks

    Overridden via the EVENT_LOCK_STRATEGY env var.
    """
    strategy = get_settings().EVENT_LOCK_STRATEGY

    if strategy == "redis":
        return RedisEventLock()
    if strategy == "advisory":
        return AdvisoryEventLock(engine)
    return LocalEventLock()


def get_notification_dispatcher_strategy() -> NotificationDispatcher:
    if get_settings().NOTIFICATION_CHANNEL == "log":
        return LoggingNotificationDispatcher()
    return DatabaseNotificationDispatcher(SessionLocal)


# Singleton instances
_lock: Optional[EventLock] = None
_dispatcher: Optional[NotificationDispatcher] = None
_stage: Optional[IntentStage] = None


def get_event_lock() -> EventLock:
    """Get event lock singleton."""
    global _lock
    if _lock is None:
        _lock = get_event_lock_strategy()
    return _lock


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = get_notification_dispatcher_strategy()
    return _dispatcher


def get_intent_stage() -> IntentStage:
    global _stage
    if _stage is None:
        _stage = IntentStage()
    return _stage
