"""Client-side message timeline for one room.

The timeline is the only owner of a room's local message sequence. Three
kinds of input mutate it: page loads, the user's own optimistic sends and
change feed events. Entries live in stable slots; ``by_id`` and
``by_client_key`` point at slots so that confirming an optimistic send
updates its slot in place instead of appending a second copy.
"""

import itertools
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from huddle.core.enums import EntryState, MessageType
from huddle.core.errors import NotFound, ValidationError
from huddle.core.logging import get_logger
from huddle.models import utcnow
from huddle.schemas import MessageRecord

logger = get_logger(__name__)

# Deleted message ids kept per timeline; refused by later merges
DELETED_ID_MEMORY = 1024


@dataclass
class TimelineEntry:
    """One visible message, optimistic or confirmed."""

    slot: int
    room_id: UUID
    sender_id: UUID
    content: str
    message_type: MessageType
    created_at: datetime
    state: EntryState
    send_order: int = 0
    message_id: Optional[UUID] = None
    client_key: Optional[str] = None
    edited_at: Optional[datetime] = None
    error: Optional[BaseException] = None

    @property
    def is_confirmed(self) -> bool:
        return self.state == EntryState.CONFIRMED

    def absorb(self, row: MessageRecord) -> None:
        """Take the authoritative values of a server row."""
        self.message_id = row.id
        self.sender_id = row.sender_id
        self.content = row.content
        self.message_type = row.message_type
        self.created_at = row.created_at
        self.edited_at = row.edited_at
        self.client_key = row.client_key or self.client_key
        self.state = EntryState.CONFIRMED
        self.error = None


def new_client_key() -> str:
    return uuid.uuid4().hex


class MessageTimeline:
    """Ordered, deduplicated view of a room's messages."""

    def __init__(self, room_id: UUID):
        self.room_id = room_id
        self._slots: Dict[int, TimelineEntry] = {}
        self.by_id: Dict[UUID, int] = {}
        self.by_client_key: Dict[str, int] = {}
        self._slot_ids = itertools.count(1)
        self._send_order = itertools.count(1)
        self._deleted: "OrderedDict[UUID, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._slots)

    # Queries

    def entries(self) -> List[TimelineEntry]:
        """Confirmed entries by (created_at, id), then unconfirmed in send order."""
        confirmed = sorted(
            (e for e in self._slots.values() if e.is_confirmed),
            key=lambda e: (e.created_at, str(e.message_id)),
        )
        unconfirmed = sorted(
            (e for e in self._slots.values() if not e.is_confirmed),
            key=lambda e: e.send_order,
        )
        return confirmed + unconfirmed

    def get(self, message_id: UUID) -> Optional[TimelineEntry]:
        slot = self.by_id.get(message_id)
        return self._slots.get(slot) if slot is not None else None

    def get_by_client_key(self, client_key: str) -> Optional[TimelineEntry]:
        slot = self.by_client_key.get(client_key)
        return self._slots.get(slot) if slot is not None else None

    def oldest_confirmed(self) -> Optional[TimelineEntry]:
        confirmed = [e for e in self._slots.values() if e.is_confirmed]
        if not confirmed:
            return None
        return min(confirmed, key=lambda e: (e.created_at, str(e.message_id)))

    def sender_ids(self) -> List[UUID]:
        return list(dict.fromkeys(e.sender_id for e in self._slots.values()))

    # Slot bookkeeping

    def _add_slot(self, entry: TimelineEntry) -> TimelineEntry:
        self._slots[entry.slot] = entry
        if entry.message_id is not None:
            self.by_id[entry.message_id] = entry.slot
        if entry.client_key is not None:
            self.by_client_key[entry.client_key] = entry.slot
        return entry

    def _drop_slot(self, entry: TimelineEntry) -> None:
        self._slots.pop(entry.slot, None)
        if entry.message_id is not None:
            self.by_id.pop(entry.message_id, None)
        if entry.client_key is not None:
            self.by_client_key.pop(entry.client_key, None)

    def _confirm(self, entry: TimelineEntry, row: MessageRecord) -> TimelineEntry:
        entry.absorb(row)
        self.by_id[row.id] = entry.slot
        return entry

    def _confirmed_entry(self, row: MessageRecord) -> TimelineEntry:
        return TimelineEntry(
            slot=next(self._slot_ids),
            room_id=row.room_id,
            sender_id=row.sender_id,
            content=row.content,
            message_type=row.message_type,
            created_at=row.created_at,
            edited_at=row.edited_at,
            state=EntryState.CONFIRMED,
            message_id=row.id,
            client_key=row.client_key,
        )

    def _pending_match(self, row: MessageRecord) -> Optional[TimelineEntry]:
        """The unconfirmed local entry this server row is the echo of, if any."""
        if not row.client_key:
            return None
        entry = self.get_by_client_key(row.client_key)
        if entry is None or entry.is_confirmed or entry.sender_id != row.sender_id:
            return None
        return entry

    def _remember_deleted(self, message_id: UUID) -> None:
        self._deleted[message_id] = None
        self._deleted.move_to_end(message_id)
        while len(self._deleted) > DELETED_ID_MEMORY:
            self._deleted.popitem(last=False)

    def _merge_row(self, row: MessageRecord) -> bool:
        if row.room_id != self.room_id:
            logger.warning(f"Ignoring message {row.id} for room {row.room_id}")
            return False
        if row.id in self.by_id or row.id in self._deleted:
            return False
        pending = self._pending_match(row)
        if pending is not None:
            self._confirm(pending, row)
        else:
            self._add_slot(self._confirmed_entry(row))
        return True

    # Page loads

    def load(self, page: Iterable[MessageRecord]) -> None:
        """Replace the confirmed set with a fresh page (newest first, as served).

        Unconfirmed local entries survive a reload; one whose row is in the
        page is confirmed in place.
        """
        for entry in [e for e in self._slots.values() if e.is_confirmed]:
            self._drop_slot(entry)
        self._deleted.clear()
        for row in reversed(list(page)):
            self._merge_row(row)
        logger.debug(f"Timeline for room {self.room_id} loaded with {len(self)} entries")

    def load_older(self, page: Iterable[MessageRecord]) -> int:
        """Merge an older page; returns how many entries it added."""
        return sum(1 for row in reversed(list(page)) if self._merge_row(row))

    # Optimistic sends

    def begin_send(
        self,
        content: str,
        sender_id: UUID,
        message_type: MessageType = MessageType.TEXT,
        client_key: Optional[str] = None,
    ) -> str:
        """Append a pending entry and return its client key."""
        key = client_key or new_client_key()
        if key in self.by_client_key:
            raise ValidationError(f"Client key {key} already in use")
        self._add_slot(
            TimelineEntry(
                slot=next(self._slot_ids),
                room_id=self.room_id,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                created_at=utcnow(),
                state=EntryState.PENDING,
                send_order=next(self._send_order),
                client_key=key,
            )
        )
        return key

    def confirm_send(
        self, client_key: str, row: MessageRecord
    ) -> Optional[TimelineEntry]:
        """Attach the server row to the pending entry, whichever arrived first.

        Returns None when the message was deleted before its send confirmed.
        """
        entry = self.get_by_client_key(client_key)
        if row.id in self._deleted:
            if entry is not None and not entry.is_confirmed:
                self._drop_slot(entry)
            return None
        if entry is None:
            # Slot was discarded locally; fall back to a plain merge
            self._merge_row(row)
            return self.get(row.id)
        if entry.is_confirmed:
            return entry
        existing = self.get(row.id)
        if existing is not None and existing is not entry:
            # The row landed in its own slot without a key match; keep one copy
            self._drop_slot(existing)
        return self._confirm(entry, row)

    def fail_send(self, client_key: str, error: BaseException) -> None:
        entry = self.get_by_client_key(client_key)
        if entry is None or entry.is_confirmed:
            return
        entry.state = EntryState.FAILED
        entry.error = error

    def retry_send(self, client_key: str) -> TimelineEntry:
        """Move a failed entry back to pending, keeping its key and position."""
        entry = self.get_by_client_key(client_key)
        if entry is None:
            raise NotFound(f"No local message with key {client_key}")
        if entry.state != EntryState.FAILED:
            raise ValidationError("Only failed messages can be retried")
        entry.state = EntryState.PENDING
        entry.error = None
        return entry

    def discard(self, client_key: str) -> None:
        """Drop a failed entry the user gave up on."""
        entry = self.get_by_client_key(client_key)
        if entry is not None and not entry.is_confirmed:
            self._drop_slot(entry)

    # Change feed events

    def apply_insert(self, row: MessageRecord) -> bool:
        """Merge an INSERT; a re-delivery or an already confirmed send is discarded."""
        return self._merge_row(row)

    def apply_update(self, row: MessageRecord) -> bool:
        """Replace content and edited_at in place; unknown ids are ignored."""
        entry = self.get(row.id)
        if entry is None:
            return False
        entry.content = row.content
        entry.edited_at = row.edited_at
        return True

    def apply_delete(self, message_id: UUID) -> bool:
        """Remove an entry; unknown ids are a silent no-op."""
        self._remember_deleted(message_id)
        entry = self.get(message_id)
        if entry is None:
            return False
        self._drop_slot(entry)
        return True

    def snapshot(self) -> List[Tuple[Optional[UUID], str, EntryState]]:
        """Compact (id, content, state) view, handy for comparisons."""
        return [(e.message_id, e.content, e.state) for e in self.entries()]
