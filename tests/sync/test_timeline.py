"""Tests for MessageTimeline reconciliation."""

import itertools
import uuid

import pytest

from huddle.core.enums import EntryState
from huddle.core.errors import NotFound, ValidationError
from huddle.sync.timeline import MessageTimeline
from tests.helpers.factories import at, make_row

ROOM = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
ALICE = uuid.UUID("00000000-0000-0000-0000-000000000001")
BOB = uuid.UUID("00000000-0000-0000-0000-000000000002")


@pytest.fixture
def timeline():
    return MessageTimeline(ROOM)


def contents(timeline):
    return [e.content for e in timeline.entries()]


class TestTimelineLoading:
    """Page loads and ordering."""

    def test_load_orders_oldest_first(self, timeline):
        """Pages arrive newest first and are shown oldest first."""
        page = [
            make_row(ROOM, BOB, "third", created_at=at(30)),
            make_row(ROOM, ALICE, "second", created_at=at(20)),
            make_row(ROOM, BOB, "first", created_at=at(10)),
        ]

        timeline.load(page)

        assert contents(timeline) == ["first", "second", "third"]
        assert all(e.state == EntryState.CONFIRMED for e in timeline.entries())

    def test_equal_timestamps_tie_break_on_id(self, timeline):
        low = make_row(ROOM, ALICE, "low", created_at=at(5), message_id=uuid.UUID(int=1))
        high = make_row(ROOM, BOB, "high", created_at=at(5), message_id=uuid.UUID(int=2))

        timeline.load([high, low])

        assert contents(timeline) == ["low", "high"]

    def test_reload_replaces_confirmed_and_keeps_pending(self, timeline):
        """A fresh page drops stale confirmed rows but keeps unconfirmed sends."""
        timeline.load([make_row(ROOM, BOB, "stale", created_at=at(1))])
        timeline.begin_send("typing...", ALICE)

        timeline.load([make_row(ROOM, BOB, "fresh", created_at=at(2))])

        assert contents(timeline) == ["fresh", "typing..."]

    def test_load_older_merges_without_duplicates(self, timeline):
        """Overlapping older pages only add rows not yet present."""
        shared = make_row(ROOM, BOB, "shared", created_at=at(20))
        timeline.load([make_row(ROOM, ALICE, "newest", created_at=at(30)), shared])

        added = timeline.load_older(
            [shared, make_row(ROOM, BOB, "oldest", created_at=at(10))]
        )

        assert added == 1
        assert contents(timeline) == ["oldest", "shared", "newest"]
        assert timeline.oldest_confirmed().content == "oldest"

    def test_rows_for_other_rooms_ignored(self, timeline):
        other = make_row(uuid.uuid4(), BOB, "elsewhere")

        assert timeline.apply_insert(other) is False
        assert len(timeline) == 0


class TestOptimisticSends:
    """Pending entries and their confirmation."""

    def test_pending_entry_visible_immediately(self, timeline):
        key = timeline.begin_send("hi", ALICE)

        entry = timeline.get_by_client_key(key)
        assert entry.state == EntryState.PENDING
        assert entry.message_id is None
        assert contents(timeline) == ["hi"]

    def test_confirm_then_feed_echo_keeps_one_copy(self, timeline):
        """The RPC result arrives first; the feed INSERT is then a duplicate."""
        key = timeline.begin_send("hi", ALICE)
        row = make_row(ROOM, ALICE, "hi", created_at=at(1), client_key=key)

        timeline.confirm_send(key, row)
        applied = timeline.apply_insert(row)

        assert applied is False
        assert timeline.snapshot() == [(row.id, "hi", EntryState.CONFIRMED)]

    def test_feed_echo_then_confirm_keeps_one_copy(self, timeline):
        """The feed INSERT arrives first and confirms the pending slot in place."""
        key = timeline.begin_send("hi", ALICE)
        slot = timeline.get_by_client_key(key).slot
        row = make_row(ROOM, ALICE, "hi", created_at=at(1), client_key=key)

        assert timeline.apply_insert(row) is True
        entry = timeline.confirm_send(key, row)

        assert entry.slot == slot
        assert len(timeline) == 1
        assert timeline.get(row.id) is entry

    def test_echo_from_other_sender_does_not_confirm(self, timeline):
        """A client key only matches rows of the same sender."""
        key = timeline.begin_send("mine", ALICE)
        foreign = make_row(ROOM, BOB, "theirs", client_key=key)

        timeline.apply_insert(foreign)

        assert timeline.get_by_client_key(key).state == EntryState.PENDING
        assert len(timeline) == 2

    def test_pending_trails_confirmed_in_send_order(self, timeline):
        timeline.begin_send("a", ALICE)
        timeline.begin_send("b", ALICE)
        timeline.apply_insert(make_row(ROOM, BOB, "bob says", created_at=at(100)))

        assert contents(timeline) == ["bob says", "a", "b"]

    def test_confirmed_send_takes_server_position(self, timeline):
        """Once confirmed, an entry sorts by its server timestamp."""
        timeline.apply_insert(make_row(ROOM, BOB, "later", created_at=at(50)))
        key = timeline.begin_send("earlier", ALICE)

        timeline.confirm_send(
            key, make_row(ROOM, ALICE, "earlier", created_at=at(40), client_key=key)
        )

        assert contents(timeline) == ["earlier", "later"]

    def test_fail_and_retry_keep_key_and_slot(self, timeline):
        key = timeline.begin_send("flaky", ALICE)
        slot = timeline.get_by_client_key(key).slot

        timeline.fail_send(key, RuntimeError("offline"))
        failed = timeline.get_by_client_key(key)
        assert failed.state == EntryState.FAILED
        assert isinstance(failed.error, RuntimeError)

        retried = timeline.retry_send(key)
        assert retried.state == EntryState.PENDING
        assert retried.slot == slot
        assert retried.error is None

    def test_retry_rules(self, timeline):
        key = timeline.begin_send("pending", ALICE)

        with pytest.raises(ValidationError):
            timeline.retry_send(key)
        with pytest.raises(NotFound):
            timeline.retry_send("missing")

    def test_duplicate_client_key_rejected(self, timeline):
        timeline.begin_send("one", ALICE, client_key="k")

        with pytest.raises(ValidationError):
            timeline.begin_send("two", ALICE, client_key="k")

    def test_discard_failed(self, timeline):
        key = timeline.begin_send("give up", ALICE)
        timeline.fail_send(key, RuntimeError("x"))

        timeline.discard(key)

        assert len(timeline) == 0
        assert timeline.get_by_client_key(key) is None

    def test_fail_after_confirm_is_ignored(self, timeline):
        key = timeline.begin_send("ok", ALICE)
        timeline.confirm_send(key, make_row(ROOM, ALICE, "ok", client_key=key))

        timeline.fail_send(key, RuntimeError("late"))

        assert timeline.get_by_client_key(key).state == EntryState.CONFIRMED


class TestFeedEvents:
    """UPDATE and DELETE handling."""

    def test_update_in_place(self, timeline):
        row = make_row(ROOM, BOB, "typo", created_at=at(1))
        timeline.load([row])

        edited = row.model_copy(update={"content": "fixed", "edited_at": at(9)})
        assert timeline.apply_update(edited) is True

        entry = timeline.get(row.id)
        assert entry.content == "fixed"
        assert entry.edited_at == at(9)
        assert entry.created_at == at(1)

    def test_update_unknown_is_ignored(self, timeline):
        assert timeline.apply_update(make_row(ROOM, BOB, "ghost")) is False
        assert len(timeline) == 0

    def test_delete_removes_entry(self, timeline):
        row = make_row(ROOM, BOB, "bye")
        timeline.load([row])

        assert timeline.apply_delete(row.id) is True
        assert timeline.get(row.id) is None
        assert timeline.apply_delete(row.id) is False

    def test_redelivered_insert_is_discarded(self, timeline):
        row = make_row(ROOM, BOB, "once")

        assert timeline.apply_insert(row) is True
        assert timeline.apply_insert(row) is False
        assert len(timeline) == 1

    def test_confirm_after_discard_falls_back_to_merge(self, timeline):
        """A send confirmed after its slot vanished still yields one entry."""
        key = timeline.begin_send("x", ALICE)
        timeline.discard(key)
        row = make_row(ROOM, ALICE, "x", client_key=key)

        entry = timeline.confirm_send(key, row)

        assert entry.message_id == row.id
        assert len(timeline) == 1

    def test_late_confirm_does_not_restore_deleted_message(self, timeline):
        """Echo, then delete, then the send's own confirm: the message stays gone."""
        key = timeline.begin_send("oops", ALICE)
        row = make_row(ROOM, ALICE, "oops", client_key=key)
        timeline.apply_insert(row)
        timeline.apply_delete(row.id)

        assert timeline.confirm_send(key, row) is None
        assert len(timeline) == 0
        assert timeline.get(row.id) is None

    def test_delete_before_confirm_drops_pending_entry(self, timeline):
        key = timeline.begin_send("gone", ALICE)
        row = make_row(ROOM, ALICE, "gone", client_key=key)
        timeline.apply_delete(row.id)

        assert timeline.confirm_send(key, row) is None
        assert timeline.get_by_client_key(key) is None
        assert len(timeline) == 0

    def test_insert_after_delete_is_refused(self, timeline):
        row = make_row(ROOM, BOB, "late")
        timeline.apply_delete(row.id)

        assert timeline.apply_insert(row) is False
        assert len(timeline) == 0

    def test_reload_forgets_deleted_ids(self, timeline):
        row = make_row(ROOM, BOB, "back")
        timeline.apply_delete(row.id)

        timeline.load([row])

        assert contents(timeline) == ["back"]

    def test_deleted_id_memory_is_bounded(self, timeline, monkeypatch):
        monkeypatch.setattr("huddle.sync.timeline.DELETED_ID_MEMORY", 2)
        first = make_row(ROOM, BOB, "first")
        timeline.apply_delete(first.id)
        timeline.apply_delete(uuid.uuid4())
        timeline.apply_delete(uuid.uuid4())

        assert timeline.apply_insert(first) is True

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_insert_order_does_not_change_render_order(self, timeline, order):
        rows = [
            make_row(ROOM, BOB, "t1", created_at=at(1)),
            make_row(ROOM, ALICE, "t2", created_at=at(2)),
            make_row(ROOM, BOB, "t3", created_at=at(3)),
        ]

        for i in order:
            timeline.apply_insert(rows[i])

        assert contents(timeline) == ["t1", "t2", "t3"]

    def test_sender_ids_distinct(self, timeline):
        timeline.load(
            [
                make_row(ROOM, BOB, "1", created_at=at(3)),
                make_row(ROOM, ALICE, "2", created_at=at(2)),
                make_row(ROOM, BOB, "3", created_at=at(1)),
            ]
        )

        assert set(timeline.sender_ids()) == {ALICE, BOB}
        assert len(timeline.sender_ids()) == 2
