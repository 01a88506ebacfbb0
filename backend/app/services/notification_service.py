"""
Notification dispatchers for resolution outcomes.

Delivery is fire-and-forget: `dispatch_notification` logs and counts failures
instead of raising, so a broken inbox never blocks a seat decision.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.core.metrics import record_notification
from app.models.notification import Notification
from app.schemas.notification import NotificationOutcome
from app.services.interfaces.notification import NotificationDispatcher

logger = get_logger(__name__)


class DatabaseNotificationDispatcher(NotificationDispatcher):
    """
    Writes a website notification row per outcome.

    Uses its own session so a failed insert cannot poison the resolution
    pass's session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(self, user_id: int, outcome: NotificationOutcome):
        async with self.session_factory() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    title=outcome.title(),
                    description=outcome.description(),
                    link=getattr(outcome, "link", None),
                    is_read=False,
                )
            )
            await session.commit()


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Logs outcomes only. Useful where no inbox exists."""

    async def notify(self, user_id: int, outcome: NotificationOutcome):
        logger.info("notification", user_id=user_id, **outcome.model_dump())


async def dispatch_notification(
    dispatcher: NotificationDispatcher,
    user_id: int,
    outcome: NotificationOutcome,
) -> bool:
    try:
        await dispatcher.notify(user_id, outcome)
    except Exception:
        logger.exception("notification_failed", user_id=user_id, kind=outcome.kind)
        record_notification(outcome.kind, delivered=False)
        return False

    record_notification(outcome.kind, delivered=True)
    return True
