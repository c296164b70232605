"""Tests for RoomSession."""

import asyncio
import uuid

import pytest

from huddle.core.enums import ChangeOp, EntryState, SubscriptionState
from huddle.core.errors import NotAuthorized, TransientIO, ValidationError
from huddle.schemas import SenderProfile
from huddle.sync.channel import SubscriptionChannel
from huddle.sync.profiles import PLACEHOLDER_LABEL, ProfileCache
from huddle.sync.session import RoomSession
from tests.helpers.factories import at, make_event, make_row
from tests.helpers.fakes import FakeBackend, FakeFeed, RecordingSleep, settle, wait_until

ROOM = uuid.uuid4()
ALICE = uuid.uuid4()
BOB = uuid.uuid4()


@pytest.fixture
def fake_feed():
    return FakeFeed()


@pytest.fixture
def backend():
    backend = FakeBackend(ALICE, ROOM)
    backend.profiles = {
        ALICE: SenderProfile(id=ALICE, username="alice", display_name="Alice Anders"),
        BOB: SenderProfile(id=BOB, username="bob", display_name="Bob Brown"),
    }
    return backend


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_session(backend, fake_feed, sleep):
    def factory(**kwargs):
        kwargs.setdefault("sleep", sleep)
        return RoomSession(
            ROOM,
            ALICE,
            backend,
            SubscriptionChannel(fake_feed),
            ProfileCache(backend.get_profiles),
            **kwargs,
        )

    return factory


def contents(session):
    return [m.content for m in session.view()]


class TestRoomSessionOpen:
    """Initial load and buffering."""

    @pytest.mark.asyncio
    async def test_open_loads_page(self, make_session, backend):
        backend.pages = [
            make_row(ROOM, BOB, "second", created_at=at(2)),
            make_row(ROOM, ALICE, "first", created_at=at(1)),
        ]
        session = make_session(page_size=20)

        await session.open()

        assert session.state == SubscriptionState.ACTIVE
        assert contents(session) == ["first", "second"]
        assert backend.load_calls[0]["limit"] == 20

    @pytest.mark.asyncio
    async def test_events_during_load_are_buffered_and_replayed(
        self, make_session, backend, fake_feed
    ):
        """Changes committed while the page loads are neither lost nor doubled."""
        in_page = make_row(ROOM, BOB, "in page", created_at=at(1))
        arrived = make_row(ROOM, BOB, "arrived during load", created_at=at(2))
        backend.pages = [in_page]

        async def deliver_while_loading():
            fake_feed.latest.push(make_event(ChangeOp.INSERT, in_page, 1))
            fake_feed.latest.push(make_event(ChangeOp.INSERT, arrived, 2))
            await settle()

        backend.on_load = deliver_while_loading
        session = make_session()

        await session.open()

        assert contents(session) == ["in page", "arrived during load"]

    @pytest.mark.asyncio
    async def test_live_events_update_view(self, make_session, backend, fake_feed):
        changes = []
        session = make_session(on_change=lambda: changes.append(True))
        await session.open()
        row = make_row(ROOM, BOB, "live", created_at=at(5))

        fake_feed.latest.push(make_event(ChangeOp.INSERT, row, 1))
        await settle()
        fake_feed.latest.push(
            make_event(ChangeOp.UPDATE, row.model_copy(update={"content": "edited"}), 2)
        )
        await settle()

        assert contents(session) == ["edited"]
        assert changes

        fake_feed.latest.push(make_event(ChangeOp.DELETE, row, 3))
        await settle()
        assert contents(session) == []

    @pytest.mark.asyncio
    async def test_raising_listener_does_not_stop_live_events(
        self, make_session, fake_feed
    ):
        calls = []

        def on_change():
            calls.append(True)
            if len(calls) == 2:
                raise RuntimeError("listener bug")

        session = make_session(on_change=on_change)
        await session.open()

        fake_feed.latest.push(
            make_event(ChangeOp.INSERT, make_row(ROOM, BOB, "a", created_at=at(1)), 1)
        )
        fake_feed.latest.push(
            make_event(ChangeOp.INSERT, make_row(ROOM, BOB, "b", created_at=at(2)), 2)
        )
        await settle()

        assert contents(session) == ["a", "b"]
        assert len(calls) >= 3
        assert session.state == SubscriptionState.ACTIVE

    @pytest.mark.asyncio
    async def test_failed_initial_load_leaves_error(self, make_session, backend, fake_feed):
        """Access errors surface to the caller and release the subscription."""
        backend.load_errors = [NotAuthorized()]
        session = make_session()

        with pytest.raises(NotAuthorized):
            await session.open()

        assert session.state == SubscriptionState.ERROR
        assert fake_feed.open_streams == []

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_session, fake_feed):
        session = make_session()
        await session.open()

        await session.close()
        await session.close()

        assert session.state == SubscriptionState.UNSUBSCRIBED
        assert fake_feed.latest.closed is True
        with pytest.raises(RuntimeError):
            await session.open()


class TestRoomSessionRecovery:
    """Transport failures and re-subscription."""

    @pytest.mark.asyncio
    async def test_transport_error_then_automatic_recovery(
        self, make_session, backend, fake_feed, sleep
    ):
        """A dropped feed moves to ERROR, reports it and re-subscribes."""
        errors = []
        backend.pages = [make_row(ROOM, BOB, "before", created_at=at(1))]
        session = make_session(on_error=errors.append, base_delay=0.5)
        await session.open()

        backend.pages = [
            make_row(ROOM, BOB, "missed", created_at=at(2)),
            make_row(ROOM, BOB, "before", created_at=at(1)),
        ]
        fake_feed.latest.fail()

        await wait_until(lambda: len(fake_feed.streams) == 2)
        await wait_until(lambda: session.state == SubscriptionState.ACTIVE)
        assert len(errors) == 1
        assert isinstance(errors[0], TransientIO)
        assert sleep.delays == [0.5]
        assert contents(session) == ["before", "missed"]
        assert len(fake_feed.open_streams) == 1

    @pytest.mark.asyncio
    async def test_recovery_backs_off_then_gives_up(
        self, make_session, backend, fake_feed, sleep
    ):
        """After max_attempts the session stays in ERROR until resubscribed."""
        errors = []
        session = make_session(on_error=errors.append, max_attempts=3, base_delay=1.0)
        await session.open()

        backend.load_errors = [TransientIO("down")] * 3
        fake_feed.latest.fail()

        await wait_until(lambda: len(sleep.delays) == 3 and session._recovery is None)
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert session.state == SubscriptionState.ERROR
        assert len(errors) == 4

        await session.resubscribe()
        assert session.state == SubscriptionState.ACTIVE
        assert len(fake_feed.open_streams) == 1

    @pytest.mark.asyncio
    async def test_no_recovery_when_disabled(self, make_session, fake_feed, sleep):
        session = make_session(max_attempts=0)
        await session.open()

        fake_feed.latest.fail()
        await settle()

        assert session.state == SubscriptionState.ERROR
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_error_during_load_is_raised(self, make_session, backend, fake_feed):
        """A feed failure while loading keeps the session out of ACTIVE."""

        async def break_feed():
            fake_feed.latest.fail()
            await settle()

        backend.on_load = break_feed
        session = make_session(max_attempts=0)

        with pytest.raises(TransientIO):
            await session.open()
        assert session.state == SubscriptionState.ERROR


class TestRoomSessionWrites:
    """Optimistic sends, edits and deletes."""

    @pytest.mark.asyncio
    async def test_send_is_optimistic_then_confirmed(self, make_session, backend):
        session = make_session()
        await session.open()
        backend.send_gate = asyncio.Event()

        task = asyncio.ensure_future(session.send("hi there"))
        await wait_until(lambda: backend.send_calls)

        assert [(m.content, m.state) for m in session.view()] == [
            ("hi there", EntryState.PENDING)
        ]

        backend.send_gate.set()
        row = await task

        assert session.timeline.get(row.id).state == EntryState.CONFIRMED
        assert backend.send_calls[0]["client_key"] == row.client_key

    @pytest.mark.asyncio
    async def test_send_echo_from_feed_not_duplicated(
        self, make_session, backend, fake_feed
    ):
        session = make_session()
        await session.open()

        row = await session.send("once")
        fake_feed.latest.push(make_event(ChangeOp.INSERT, row, 1))
        await settle()

        assert contents(session) == ["once"]

    @pytest.mark.asyncio
    async def test_send_failure_then_retry(self, make_session, backend):
        """A failed send keeps its slot and key; retrying confirms it."""
        session = make_session()
        await session.open()
        backend.send_errors = [TransientIO("offline")]

        with pytest.raises(TransientIO):
            await session.send("flaky")

        failed = session.view()[0]
        assert failed.state == EntryState.FAILED
        key = failed.entry.client_key

        row = await session.retry_send(key)

        assert row.client_key == key
        assert [(m.content, m.state) for m in session.view()] == [
            ("flaky", EntryState.CONFIRMED)
        ]
        assert [c["client_key"] for c in backend.send_calls] == [key, key]

    @pytest.mark.asyncio
    async def test_cancelled_send_still_confirms(self, make_session, backend):
        """Leaving the room mid-send does not abort the write."""
        session = make_session()
        await session.open()
        backend.send_gate = asyncio.Event()

        task = asyncio.ensure_future(session.send("in flight"))
        await wait_until(lambda: backend.send_calls)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        backend.send_gate.set()
        await wait_until(lambda: len(backend.stored) == 1)
        await settle()

        assert [(m.content, m.state) for m in session.view()] == [
            ("in flight", EntryState.CONFIRMED)
        ]

    @pytest.mark.asyncio
    async def test_invalid_content_rejected_before_display(self, make_session):
        session = make_session()
        await session.open()

        with pytest.raises(ValidationError):
            await session.send("   ")
        assert session.view() == []

    @pytest.mark.asyncio
    async def test_edit_and_delete(self, make_session):
        session = make_session()
        await session.open()
        row = await session.send("draft")

        await session.edit(row.id, "final")
        assert contents(session) == ["final"]
        assert session.timeline.get(row.id).edited_at is not None

        await session.delete(row.id)
        assert contents(session) == []

    @pytest.mark.asyncio
    async def test_load_older_uses_oldest_timestamp(self, make_session, backend):
        backend.pages = [
            make_row(ROOM, BOB, "b", created_at=at(20)),
            make_row(ROOM, BOB, "a", created_at=at(10)),
        ]
        session = make_session(page_size=1)
        await session.open()
        assert contents(session) == ["b"]

        added = await session.load_older()

        assert added == 1
        assert backend.load_calls[-1]["before"] == at(20)
        assert contents(session) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_load_older_pages_through_equal_timestamps(
        self, make_session, backend
    ):
        backend.pages = [
            make_row(ROOM, BOB, f"m{n}", created_at=at(30), message_id=uuid.UUID(int=n))
            for n in (4, 3, 2, 1)
        ]
        session = make_session(page_size=2)
        await session.open()
        assert contents(session) == ["m3", "m4"]

        added = await session.load_older()

        assert added == 2
        assert backend.load_calls[-1]["before"] == at(30)
        assert backend.load_calls[-1]["before_id"] == uuid.UUID(int=3)
        assert contents(session) == ["m1", "m2", "m3", "m4"]


class TestSenderLabels:
    """Profile resolution for display."""

    @pytest.mark.asyncio
    async def test_placeholder_until_profile_resolves(self, make_session, backend):
        """Labels never block: unknown senders show the placeholder first."""
        backend.pages = [make_row(ROOM, BOB, "hey", created_at=at(1))]
        backend.profile_gate = asyncio.Event()
        session = make_session()

        await session.open()
        assert session.view()[0].sender_label == PLACEHOLDER_LABEL

        backend.profile_gate.set()
        await wait_until(lambda: session.view()[0].sender_label == "Bob Brown")

    @pytest.mark.asyncio
    async def test_each_sender_fetched_once(self, make_session, backend, fake_feed):
        backend.pages = [
            make_row(ROOM, BOB, "one", created_at=at(2)),
            make_row(ROOM, BOB, "two", created_at=at(1)),
        ]
        session = make_session()
        await session.open()
        await settle()

        fake_feed.latest.push(
            make_event(ChangeOp.INSERT, make_row(ROOM, BOB, "three", created_at=at(3)), 1)
        )
        await settle()

        assert backend.profile_calls == [[BOB]]
        assert {m.sender_label for m in session.view()} == {"Bob Brown"}

    @pytest.mark.asyncio
    async def test_close_cancels_pending_profile_lookups(self, make_session, backend):
        changes = []
        backend.pages = [make_row(ROOM, BOB, "hey", created_at=at(1))]
        backend.profile_gate = asyncio.Event()
        session = make_session(on_change=lambda: changes.append(True))
        await session.open()
        await settle()
        lookups = list(session._background)
        assert lookups

        await session.close()
        backend.profile_gate.set()
        await settle()

        assert all(task.cancelled() for task in lookups)
        assert not session._background
        assert len(changes) == 1
