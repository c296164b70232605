"""Live view of one room: initial load, feed events and the user's own writes.

State machine::

    UNSUBSCRIBED -> SUBSCRIBING -> ACTIVE -> (ERROR | UNSUBSCRIBED)
                                    ERROR -> SUBSCRIBING (re-subscribe)

Opening subscribes first and buffers feed events while the initial page is
fetched, then replays them onto the loaded page, so nothing committed in
between is lost. Gaps after a transport failure are closed the same way: a
fresh subscription and a fresh initial load.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple, Union
from uuid import UUID

from huddle.core.enums import ChangeOp, EntryState, MessageType, SubscriptionState
from huddle.core.errors import HuddleError, TransientIO
from huddle.core.logging import get_logger
from huddle.core.observability.metrics import log_subscription_event
from huddle.core.validation import validate_content
from huddle.schemas import MessageRecord
from huddle.sync.backend import ChatBackend
from huddle.sync.channel import Subscription, SubscriptionChannel
from huddle.sync.profiles import ProfileCache
from huddle.sync.timeline import MessageTimeline, TimelineEntry

logger = get_logger(__name__)

Listener = Callable[[], Union[None, Awaitable[None]]]
ErrorListener = Callable[[TransientIO], Union[None, Awaitable[None]]]


@dataclass
class DisplayMessage:
    """A timeline entry with its resolved sender label."""

    entry: TimelineEntry
    sender_label: str

    @property
    def content(self) -> str:
        return self.entry.content

    @property
    def state(self) -> EntryState:
        return self.entry.state


class RoomSession:
    def __init__(
        self,
        room_id: UUID,
        user_id: UUID,
        backend: ChatBackend,
        channel: SubscriptionChannel,
        profiles: ProfileCache,
        page_size: int = 50,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        on_change: Optional[Listener] = None,
        on_error: Optional[ErrorListener] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.room_id = room_id
        self.user_id = user_id
        self.backend = backend
        self.channel = channel
        self.profiles = profiles
        self.page_size = page_size
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.on_change = on_change
        self.on_error = on_error
        self._sleep = sleep

        self.timeline = MessageTimeline(room_id)
        self.state = SubscriptionState.UNSUBSCRIBED
        self.last_error: Optional[TransientIO] = None
        self._subscription: Optional[Subscription] = None
        self._buffer: Optional[List[Tuple[ChangeOp, MessageRecord]]] = None
        self._recovery: Optional[asyncio.Task] = None
        self._background: set = set()
        self._closed = False

    # Lifecycle

    def _set_state(self, state: SubscriptionState) -> None:
        if state != self.state:
            logger.debug(f"Room {self.room_id}: {self.state.value} -> {state.value}")
            self.state = state

    async def open(self) -> None:
        """Subscribe and load the newest page. Raises on failure, leaving ERROR."""
        if self._closed:
            raise RuntimeError("Room session is closed")
        if self.state in (SubscriptionState.ACTIVE, SubscriptionState.SUBSCRIBING):
            return
        await self._open_once()

    async def _open_once(self) -> None:
        self._drop_subscription()
        self._set_state(SubscriptionState.SUBSCRIBING)
        self._buffer = []
        self._subscription = self.channel.subscribe(
            self.room_id,
            on_insert=lambda row: self._on_event(ChangeOp.INSERT, row),
            on_update=lambda row: self._on_event(ChangeOp.UPDATE, row),
            on_delete=lambda row: self._on_event(ChangeOp.DELETE, row),
            on_error=self._on_transport_error,
        )
        try:
            page = await self.backend.load_messages(self.room_id, limit=self.page_size)
        except BaseException:
            self._buffer = None
            self._drop_subscription()
            self._set_state(SubscriptionState.ERROR)
            raise

        self.timeline.load(page)
        buffered, self._buffer = self._buffer, None
        for op, row in buffered:
            self._apply(op, row)

        if self.state == SubscriptionState.ERROR and self.last_error is not None:
            # The feed broke while the page was loading
            raise self.last_error

        self.last_error = None
        self._set_state(SubscriptionState.ACTIVE)
        log_subscription_event(
            "active", str(self.room_id), loaded=len(page), replayed=len(buffered)
        )
        self._prefetch_profiles()
        await self._notify()

    async def resubscribe(self) -> None:
        """Manual recovery from ERROR: fresh subscription, fresh initial load."""
        if self._closed:
            raise RuntimeError("Room session is closed")
        self._cancel_recovery()
        await self._open_once()

    def _drop_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _cancel_recovery(self) -> None:
        task = self._recovery
        self._recovery = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def close(self) -> None:
        """Release the subscription; pending sends still finish. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._cancel_recovery()
        self._drop_subscription()
        for task in list(self._background):
            task.cancel()
        self._background.clear()
        self._buffer = None
        self._set_state(SubscriptionState.UNSUBSCRIBED)

    # Feed events

    def _on_event(self, op: ChangeOp, row: MessageRecord) -> Optional[Awaitable[None]]:
        if self._buffer is not None:
            self._buffer.append((op, row))
            return None
        if self._apply(op, row):
            if op == ChangeOp.INSERT:
                self._prefetch_profiles()
            return self._notify()
        return None

    def _apply(self, op: ChangeOp, row: MessageRecord) -> bool:
        if op == ChangeOp.INSERT:
            return self.timeline.apply_insert(row)
        if op == ChangeOp.UPDATE:
            return self.timeline.apply_update(row)
        return self.timeline.apply_delete(row.id)

    async def _on_transport_error(self, error: TransientIO) -> None:
        if self._closed:
            return
        self._subscription = None
        self.last_error = error
        self._set_state(SubscriptionState.ERROR)
        await self._report(error)
        if self.max_attempts > 0 and self._recovery is None:
            self._recovery = asyncio.ensure_future(self._recover())

    async def _recover(self) -> None:
        try:
            for attempt in range(self.max_attempts):
                delay = self.base_delay * (2**attempt)
                logger.info(
                    f"Re-subscribing to room {self.room_id} in {delay}s "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                await self._sleep(delay)
                if self._closed:
                    return
                try:
                    await self._open_once()
                    log_subscription_event(
                        "recovered", str(self.room_id), attempts=attempt + 1
                    )
                    return
                except TransientIO as e:
                    self.last_error = e
                    await self._report(e)
                except HuddleError as e:
                    logger.error(f"Re-subscribe to room {self.room_id} rejected: {e}")
                    return
            logger.warning(
                f"Giving up on room {self.room_id} after {self.max_attempts} attempts"
            )
            log_subscription_event("recovery_exhausted", str(self.room_id))
        finally:
            if self._recovery is asyncio.current_task():
                self._recovery = None

    async def _report(self, error: TransientIO) -> None:
        if self.on_error is not None:
            result = self.on_error(error)
            if inspect.isawaitable(result):
                await result

    async def _notify(self) -> None:
        if self.on_change is not None:
            result = self.on_change()
            if inspect.isawaitable(result):
                await result

    # Sender labels

    def _prefetch_profiles(self) -> None:
        if self._closed:
            return
        missing = self.profiles.missing(self.timeline.sender_ids())
        if not missing:
            return
        task = asyncio.ensure_future(self._refresh_profiles(missing))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_profiles(self, user_ids: List[UUID]) -> None:
        try:
            await self.profiles.resolve_many(user_ids)
        except TransientIO as e:
            # Labels stay on the placeholder until the next refresh
            logger.warning(f"Profile lookup failed for room {self.room_id}: {e}")
            return
        if not self._closed:
            await self._notify()

    def view(self) -> List[DisplayMessage]:
        """Ordered messages with sender labels; never waits on profile lookups."""
        return [
            DisplayMessage(
                entry=entry, sender_label=self.profiles.label_for(entry.sender_id)
            )
            for entry in self.timeline.entries()
        ]

    # User actions

    async def load_older(self) -> int:
        """Fetch the page before the oldest loaded message."""
        oldest = self.timeline.oldest_confirmed()
        page = await self.backend.load_messages(
            self.room_id,
            limit=self.page_size,
            before=oldest.created_at if oldest else None,
            before_id=oldest.message_id if oldest else None,
        )
        added = self.timeline.load_older(page)
        if added:
            self._prefetch_profiles()
            await self._notify()
        return added

    async def send(
        self, content: str, message_type: MessageType = MessageType.TEXT
    ) -> MessageRecord:
        """Show the message immediately, then persist it."""
        validate_content(content)
        client_key = self.timeline.begin_send(content, self.user_id, message_type)
        await self._notify()
        return await self._deliver(client_key)

    async def retry_send(self, client_key: str) -> MessageRecord:
        """Resend a failed message with its original key."""
        self.timeline.retry_send(client_key)
        await self._notify()
        return await self._deliver(client_key)

    async def _deliver(self, client_key: str) -> MessageRecord:
        entry = self.timeline.get_by_client_key(client_key)
        task = asyncio.ensure_future(
            self.backend.send_message(
                self.room_id,
                entry.content,
                message_type=entry.message_type,
                client_key=client_key,
            )
        )
        try:
            # A caller that goes away (room switch) must not abort the write
            row = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                self.timeline.fail_send(client_key, TransientIO("Send was cancelled"))
            else:
                task.add_done_callback(lambda t: self._settle(client_key, t))
            raise
        except Exception as e:
            self.timeline.fail_send(client_key, e)
            await self._notify()
            raise
        self.timeline.confirm_send(client_key, row)
        await self._notify()
        return row

    def _settle(self, client_key: str, task: asyncio.Future) -> None:
        """Reconcile a send that completed after its caller was cancelled."""
        if task.cancelled():
            self.timeline.fail_send(client_key, TransientIO("Send was cancelled"))
        elif task.exception() is not None:
            self.timeline.fail_send(client_key, task.exception())
        else:
            self.timeline.confirm_send(client_key, task.result())
            logger.debug(f"Detached send {client_key} confirmed")

    async def edit(self, message_id: UUID, content: str) -> MessageRecord:
        validate_content(content)
        row = await self.backend.edit_message(message_id, content)
        if self.timeline.apply_update(row):
            await self._notify()
        return row

    async def delete(self, message_id: UUID) -> None:
        await self.backend.delete_message(message_id)
        if self.timeline.apply_delete(message_id):
            await self._notify()
