"""
Pytest fixtures for the resolution engine and API.

Each test gets its own SQLite file (aiosqlite) and an in-process fake Redis,
so the intent stage, Redis locks and database behave like the real stack
without any service running.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable, Optional

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.models import (
    Event,
    GroupMembership,
    PriorityPool,
    PriorityPoolGroup,
    Registration,
    RegistrationStatus,
    Strike,
    User,
)
from app.schemas.notification import NotificationOutcome
from app.services.intent_stage import IntentStage
from app.services.interfaces.local_lock import LocalEventLock
from app.services.interfaces.notification import NotificationDispatcher
from app.services.resolution_service import resolve_registrations_for_event
from app.services.strategy_factory import (
    get_event_lock,
    get_intent_stage,
    get_notification_dispatcher,
)

# Registration opens here in every scenario; intents are offsets from it
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def at(**offset) -> datetime:
    return T0 + timedelta(**offset)


class RecordingDispatcher(NotificationDispatcher):
    """Collects outcomes instead of delivering them."""

    def __init__(self):
        self.sent: list[tuple[int, NotificationOutcome]] = []

    async def notify(self, user_id: int, outcome: NotificationOutcome):
        self.sent.append((user_id, outcome))

    def for_user(self, user_id: int) -> list[NotificationOutcome]:
        return [outcome for uid, outcome in self.sent if uid == user_id]

    def kinds(self, user_id: int) -> list[str]:
        return [outcome.kind for outcome in self.for_user(user_id)]


class FailingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.attempts = 0

    async def notify(self, user_id: int, outcome: NotificationOutcome):
        self.attempts += 1
        raise ConnectionError("inbox unavailable")


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    @sa_event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def stage(redis_client) -> IntentStage:
    return IntentStage(client=redis_client, prefix="registration")


@pytest.fixture
def lock() -> LocalEventLock:
    return LocalEventLock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def resolve(db_session, stage, lock, dispatcher):
    """Run one resolution pass with the test collaborators."""

    async def _resolve(event_id: int, **kwargs):
        return await resolve_registrations_for_event(
            db_session,
            event_id,
            stage=stage,
            lock=lock,
            dispatcher=kwargs.pop("dispatcher", dispatcher),
            **kwargs,
        )

    return _resolve


class Factory:
    """Creates users, events and staged intents directly in the database."""

    def __init__(self, db: AsyncSession, stage: IntentStage):
        self.db = db
        self.stage = stage
        self._ids = itertools.count(1)
        self._past_event: Optional[Event] = None

    async def user(self, groups: Iterable[str] = (), strikes: int = 0) -> User:
        n = next(self._ids)
        user = User(email=f"user{n}@example.com", name=f"User {n}")
        self.db.add(user)
        await self.db.flush()

        for slug in groups:
            self.db.add(GroupMembership(user_id=user.id, group_slug=slug))
        if strikes:
            past = await self._strike_event()
            self.db.add(Strike(event_id=past.id, user_id=user.id, count=strikes, reason="No-show"))
        await self.db.commit()
        return user

    async def event(
        self,
        capacity: Optional[int] = None,
        pools: Iterable[Iterable[str]] = (),
        registration_start: Optional[datetime] = T0,
        closed: bool = False,
        requires_signing_up: bool = True,
        enforces_previous_strikes: bool = True,
    ) -> Event:
        n = next(self._ids)
        event = Event(
            title=f"Event {n}",
            slug=f"event-{n}",
            capacity=capacity,
            registration_start=registration_start,
            is_registration_closed=closed,
            requires_signing_up=requires_signing_up,
            enforces_previous_strikes=enforces_previous_strikes,
            pools=[
                PriorityPool(groups=[PriorityPoolGroup(group_slug=slug) for slug in slugs])
                for slugs in pools
            ],
        )
        self.db.add(event)
        await self.db.commit()
        return event

    async def intent(self, event: Event, user: User, requested_at: datetime) -> Registration:
        """Pending row first, then the staged intent, as the sign-up path does."""
        registration = Registration(
            event_id=event.id,
            user_id=user.id,
            status=RegistrationStatus.PENDING.value,
            created_at=requested_at,
        )
        self.db.add(registration)
        await self.db.commit()
        await self.stage.stage(event.id, user.id, requested_at)
        return registration

    async def registration(
        self,
        event: Event,
        user: User,
        status: RegistrationStatus,
        requested_at: datetime,
        waitlist_position: Optional[int] = None,
    ) -> Registration:
        """Already-resolved row with no staged intent."""
        registration = Registration(
            event_id=event.id,
            user_id=user.id,
            status=status.value,
            waitlist_position=waitlist_position,
            created_at=requested_at,
        )
        self.db.add(registration)
        await self.db.commit()
        return registration

    async def _strike_event(self) -> Event:
        if self._past_event is None:
            self._past_event = await self.event(capacity=10, registration_start=None)
        return self._past_event


@pytest.fixture
def factory(db_session, stage) -> Factory:
    return Factory(db_session, stage)


async def status_of(db: AsyncSession, event_id: int, user_id: int) -> tuple[str, Optional[int]]:
    """Current (status, waitlist_position) as stored."""
    row = await db.get(Registration, (event_id, user_id), populate_existing=True)
    return row.status, row.waitlist_position


@pytest_asyncio.fixture(scope="function")
async def client(db_session, stage, lock, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the database, intent stage, lock and dispatcher overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_intent_stage] = lambda: stage
    app.dependency_overrides[get_event_lock] = lambda: lock
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    # ASGITransport does not run the lifespan, so no scheduler starts here
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
