"""
Tests for the resolution engine, including the ordering and swap scenarios.
"""

import pytest
from sqlalchemy import select

from app.core.exceptions import EventLockedError, EventNotFoundError
from app.models import Notification, RegistrationStatus
from app.services.notification_service import DatabaseNotificationDispatcher
from conftest import FailingDispatcher, at, status_of

REGISTERED = RegistrationStatus.REGISTERED.value
WAITLISTED = RegistrationStatus.WAITLISTED.value
CANCELLED = RegistrationStatus.CANCELLED.value
PENDING = RegistrationStatus.PENDING.value


@pytest.mark.asyncio
async def test_fills_capacity_then_waitlists(db_session, factory, stage, dispatcher, resolve):
    """Seats go first-come-first-served; the rest queue in request order."""
    event = await factory.event(capacity=2)
    users = [await factory.user() for _ in range(4)]
    for i, user in enumerate(users):
        await factory.intent(event, user, at(milliseconds=10 * i))

    summary = await resolve(event.id)

    assert summary.processed == 4
    assert summary.registered == 2
    assert summary.waitlisted == 2
    assert await status_of(db_session, event.id, users[0].id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, users[1].id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, users[2].id) == (WAITLISTED, 1)
    assert await status_of(db_session, event.id, users[3].id) == (WAITLISTED, 2)
    assert await stage.count(event.id) == 0

    assert dispatcher.kinds(users[0].id) == ["registered"]
    assert dispatcher.for_user(users[3].id)[0].position == 2


@pytest.mark.asyncio
async def test_request_instant_wins_over_arrival_order(db_session, factory, resolve):
    """A later insert with an earlier request instant still gets the seat."""
    event = await factory.event(capacity=1)
    late_writer = await factory.user()
    early_requester = await factory.user()
    await factory.intent(event, late_writer, at(seconds=2))
    await factory.intent(event, early_requester, at(seconds=1))

    await resolve(event.id)

    assert await status_of(db_session, event.id, early_requester.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, late_writer.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_existing_seats_count_against_capacity(db_session, factory, resolve):
    event = await factory.event(capacity=2)
    seated = await factory.user()
    queued = await factory.user()
    newcomer = await factory.user()
    await factory.registration(event, seated, RegistrationStatus.REGISTERED, at())
    await factory.registration(event, queued, RegistrationStatus.WAITLISTED, at(seconds=1), waitlist_position=1)
    await factory.intent(event, newcomer, at(seconds=2))

    await resolve(event.id)

    # One seat was still free
    assert await status_of(db_session, event.id, newcomer.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, queued.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_unlimited_capacity_registers_everyone(db_session, factory, resolve):
    event = await factory.event(capacity=None)
    users = [await factory.user() for _ in range(5)]
    for i, user in enumerate(users):
        await factory.intent(event, user, at(seconds=i))

    summary = await resolve(event.id)

    assert summary.registered == 5
    for user in users:
        assert await status_of(db_session, event.id, user.id) == (REGISTERED, None)


@pytest.mark.asyncio
async def test_zero_capacity_waitlists_everyone(db_session, factory, resolve):
    event = await factory.event(capacity=0)
    a = await factory.user()
    b = await factory.user()
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(seconds=1))

    await resolve(event.id)

    assert await status_of(db_session, event.id, a.id) == (WAITLISTED, 1)
    assert await status_of(db_session, event.id, b.id) == (WAITLISTED, 2)


@pytest.mark.asyncio
async def test_second_pass_is_a_no_op(db_session, factory, dispatcher, resolve):
    """Re-running with nothing staged changes nothing and notifies no one."""
    event = await factory.event(capacity=1)
    a = await factory.user()
    b = await factory.user()
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(seconds=1))

    await resolve(event.id)
    sent = len(dispatcher.sent)
    summary = await resolve(event.id)

    assert summary.processed == 0
    assert len(dispatcher.sent) == sent
    assert await status_of(db_session, event.id, a.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, b.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_stale_intent_discarded(db_session, factory, stage, dispatcher, resolve):
    """An intent whose row was already resolved (crash before delete) is dropped."""
    event = await factory.event(capacity=1)
    user = await factory.user()
    await factory.registration(event, user, RegistrationStatus.REGISTERED, at())
    await stage.stage(event.id, user.id, at())

    summary = await resolve(event.id)

    assert summary.stale == 1
    assert summary.processed == 0
    assert dispatcher.sent == []
    assert await stage.count(event.id) == 0
    assert await status_of(db_session, event.id, user.id) == (REGISTERED, None)


@pytest.mark.asyncio
async def test_intent_without_row_discarded(factory, stage, dispatcher, resolve):
    event = await factory.event(capacity=1)
    user = await factory.user()
    await stage.stage(event.id, user.id, at())

    summary = await resolve(event.id)

    assert summary.stale == 1
    assert dispatcher.sent == []
    assert await stage.count(event.id) == 0


@pytest.mark.asyncio
async def test_strike_gate_cancels_early_request(db_session, factory, dispatcher, resolve):
    event = await factory.event(capacity=5)
    struck = await factory.user(strikes=1)
    await factory.intent(event, struck, at(hours=1))

    summary = await resolve(event.id)

    assert summary.cancelled == 1
    assert await status_of(db_session, event.id, struck.id) == (CANCELLED, None)
    [outcome] = dispatcher.for_user(struck.id)
    assert outcome.kind == "blocked"
    assert "3 hours" in outcome.reason


@pytest.mark.asyncio
async def test_strike_gate_uses_request_instant_not_pass_time(db_session, factory, resolve):
    """The pass runs long after the window closed; the request instant still decides."""
    event = await factory.event(capacity=5)
    patient = await factory.user(strikes=2)
    hasty = await factory.user(strikes=2)
    await factory.intent(event, patient, at(hours=12))
    await factory.intent(event, hasty, at(hours=11, minutes=59))

    await resolve(event.id)

    assert await status_of(db_session, event.id, patient.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, hasty.id) == (CANCELLED, None)


@pytest.mark.asyncio
async def test_blocked_user_takes_no_seat(db_session, factory, resolve):
    event = await factory.event(capacity=1)
    struck = await factory.user(strikes=1)
    clean = await factory.user()
    await factory.intent(event, struck, at(minutes=1))
    await factory.intent(event, clean, at(minutes=2))

    await resolve(event.id)

    assert await status_of(db_session, event.id, clean.id) == (REGISTERED, None)


@pytest.mark.asyncio
async def test_prioritized_user_displaces_non_prioritized(db_session, factory, dispatcher, resolve):
    event = await factory.event(capacity=1, pools=[["board"]])
    regular = await factory.user()
    board = await factory.user(groups=["board"])
    await factory.intent(event, regular, at())
    await factory.intent(event, board, at(seconds=1))

    summary = await resolve(event.id)

    assert summary.swapped == 1
    assert await status_of(db_session, event.id, board.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, regular.id) == (WAITLISTED, 1)
    assert dispatcher.kinds(regular.id) == ["registered", "displaced"]
    assert dispatcher.for_user(regular.id)[1].new_position == 1


@pytest.mark.asyncio
async def test_capacity_one_scenario_without_pools(db_session, factory, resolve):
    """A, B, C in order with no pools: C simply queues behind B."""
    event = await factory.event(capacity=1)
    a, b, c = [await factory.user(groups=["board"]) for _ in range(3)]
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(milliseconds=10))
    await factory.intent(event, c, at(milliseconds=20))

    summary = await resolve(event.id)

    assert summary.swapped == 0
    assert await status_of(db_session, event.id, a.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, b.id) == (WAITLISTED, 1)
    assert await status_of(db_session, event.id, c.id) == (WAITLISTED, 2)


@pytest.mark.asyncio
async def test_capacity_one_scenario_with_pool(db_session, factory, resolve):
    """Prioritized C takes A's seat; A re-enters the waitlist ahead of B by request time."""
    event = await factory.event(capacity=1, pools=[["board"]])
    a = await factory.user()
    b = await factory.user()
    c = await factory.user(groups=["board"])
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(milliseconds=10))
    await factory.intent(event, c, at(milliseconds=20))

    await resolve(event.id)

    assert await status_of(db_session, event.id, c.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, a.id) == (WAITLISTED, 1)
    assert await status_of(db_session, event.id, b.id) == (WAITLISTED, 2)


@pytest.mark.asyncio
async def test_prioritized_jumps_waitlist_when_no_swap_target(db_session, factory, dispatcher, resolve):
    """All seats held by prioritized users: the newcomer heads the waitlist."""
    event = await factory.event(capacity=1, pools=[["board"]])
    seated = await factory.user(groups=["board"])
    regular = await factory.user()
    late_board = await factory.user(groups=["board"])
    await factory.intent(event, seated, at())
    await factory.intent(event, regular, at(seconds=1))
    await factory.intent(event, late_board, at(seconds=2))

    summary = await resolve(event.id)

    assert summary.swapped == 0
    assert await status_of(db_session, event.id, seated.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, late_board.id) == (WAITLISTED, 1)
    assert await status_of(db_session, event.id, regular.id) == (WAITLISTED, 2)
    assert dispatcher.for_user(late_board.id)[0].position == 1


@pytest.mark.asyncio
async def test_swap_across_passes_renumbers_existing_waitlist(db_session, factory, resolve):
    event = await factory.event(capacity=2, pools=[["board"]])
    regulars = [await factory.user() for _ in range(4)]
    for i, user in enumerate(regulars):
        await factory.intent(event, user, at(seconds=i))
    await resolve(event.id)

    board = await factory.user(groups=["board"])
    await factory.intent(event, board, at(seconds=10))
    await resolve(event.id)

    assert await status_of(db_session, event.id, board.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, regulars[1].id) == (REGISTERED, None)
    positions = [
        (await status_of(db_session, event.id, u.id))[1]
        for u in (regulars[0], regulars[2], regulars[3])
    ]
    assert positions == [1, 2, 3]


@pytest.mark.asyncio
async def test_swap_order_latest_first(db_session, factory, resolve):
    event = await factory.event(capacity=2, pools=[["board"]])
    first = await factory.user()
    second = await factory.user()
    board = await factory.user(groups=["board"])
    await factory.intent(event, first, at())
    await factory.intent(event, second, at(seconds=1))
    await factory.intent(event, board, at(seconds=2))

    await resolve(event.id, swap_order="latest_first")

    assert await status_of(db_session, event.id, first.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, second.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_pool_requires_every_group(db_session, factory, resolve):
    event = await factory.event(capacity=1, pools=[["board", "students"]])
    regular = await factory.user()
    half = await factory.user(groups=["board"])
    await factory.intent(event, regular, at())
    await factory.intent(event, half, at(seconds=1))

    summary = await resolve(event.id)

    assert summary.swapped == 0
    assert await status_of(db_session, event.id, half.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_strikes_strip_priority_when_enforced(db_session, factory, resolve):
    event = await factory.event(capacity=1, pools=[["board"]], registration_start=None)
    regular = await factory.user()
    struck_board = await factory.user(groups=["board"], strikes=3)
    await factory.intent(event, regular, at())
    await factory.intent(event, struck_board, at(seconds=1))

    await resolve(event.id)

    assert await status_of(db_session, event.id, regular.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, struck_board.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_strikes_ignored_for_priority_when_not_enforced(db_session, factory, resolve):
    event = await factory.event(
        capacity=1, pools=[["board"]], registration_start=None, enforces_previous_strikes=False
    )
    regular = await factory.user()
    struck_board = await factory.user(groups=["board"], strikes=3)
    await factory.intent(event, regular, at())
    await factory.intent(event, struck_board, at(seconds=1))

    await resolve(event.id)

    assert await status_of(db_session, event.id, struck_board.id) == (REGISTERED, None)
    assert await status_of(db_session, event.id, regular.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_closed_event_drops_intents(db_session, factory, stage, dispatcher, resolve):
    event = await factory.event(capacity=5, closed=True)
    user = await factory.user()
    await factory.intent(event, user, at())

    summary = await resolve(event.id)

    assert summary.discarded == 1
    assert await stage.count(event.id) == 0
    assert await status_of(db_session, event.id, user.id) == (PENDING, None)
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_event_without_sign_up_drops_intents(factory, stage, resolve):
    event = await factory.event(capacity=5, requires_signing_up=False)
    user = await factory.user()
    await factory.intent(event, user, at())

    summary = await resolve(event.id)

    assert summary.discarded == 1
    assert await stage.count(event.id) == 0


@pytest.mark.asyncio
async def test_unknown_event_raises(stage, resolve):
    await stage.stage(404, 1, at())
    with pytest.raises(EventNotFoundError):
        await resolve(404)
    # Intent is left for whoever fixes the data
    assert await stage.count(404) == 1


@pytest.mark.asyncio
async def test_locked_event_raises_and_keeps_intents(factory, stage, lock, resolve):
    event = await factory.event(capacity=1)
    user = await factory.user()
    await factory.intent(event, user, at())

    assert await lock.acquire(event.id)
    try:
        with pytest.raises(EventLockedError):
            await resolve(event.id)
    finally:
        await lock.release(event.id)

    assert await stage.count(event.id) == 1
    summary = await resolve(event.id)
    assert summary.registered == 1


@pytest.mark.asyncio
async def test_notification_failure_does_not_abort_pass(db_session, factory, stage, resolve):
    event = await factory.event(capacity=1)
    a = await factory.user()
    b = await factory.user()
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(seconds=1))
    failing = FailingDispatcher()

    summary = await resolve(event.id, dispatcher=failing)

    assert summary.processed == 2
    assert failing.attempts == 2
    assert await stage.count(event.id) == 0
    assert await status_of(db_session, event.id, b.id) == (WAITLISTED, 1)


@pytest.mark.asyncio
async def test_database_notifications_written(db_session, factory, session_factory, resolve):
    event = await factory.event(capacity=1)
    a = await factory.user()
    b = await factory.user()
    await factory.intent(event, a, at())
    await factory.intent(event, b, at(seconds=1))

    await resolve(event.id, dispatcher=DatabaseNotificationDispatcher(session_factory))

    result = await db_session.execute(select(Notification).order_by(Notification.user_id))
    notifications = list(result.scalars())
    assert [n.user_id for n in notifications] == [a.id, b.id]
    assert notifications[0].link.endswith(f"/events/{event.slug}")
    assert "position 1" in notifications[1].description
