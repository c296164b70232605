"""Per-room subscription over the change feed."""

import asyncio
import inspect
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Protocol,
    Union,
)
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from huddle.core.enums import ChangeOp
from huddle.core.errors import TransientIO
from huddle.core.logging import get_logger
from huddle.core.messaging.feed import ChangeEvent
from huddle.core.observability.metrics import log_subscription_event
from huddle.schemas import MessageRecord

logger = get_logger(__name__)

MESSAGE_TABLE = "message"

Handler = Callable[[MessageRecord], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[TransientIO], Union[None, Awaitable[None]]]


class EventStream(Protocol):
    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    def close(self) -> None: ...


class ChangeFeed(Protocol):
    def subscribe(self, table: str, **filters: Any) -> EventStream: ...


async def _call(handler: Optional[Callable], *args) -> None:
    if handler is None:
        return
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """Handle returned by ``SubscriptionChannel.subscribe``."""

    def __init__(self, room_id: UUID, stream: EventStream):
        self.room_id = room_id
        self._stream = stream
        self._task: Optional[asyncio.Task] = None
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released and self._task is not None and not self._task.done()

    def _release_stream(self) -> None:
        if not self._released:
            self._released = True
            self._stream.close()
            log_subscription_event("unsubscribed", str(self.room_id))

    def unsubscribe(self) -> None:
        """Stop delivery and release the feed subscription. Safe to call twice."""
        if self._released:
            return
        self._release_stream()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)


class SubscriptionChannel:
    """Opens one filtered feed subscription per room.

    Events are delivered by a pump task in arrival order. For any one message
    identity an event older (by commit sequence) than one already delivered is
    dropped, so a message's own changes are seen in commit order. Exact
    re-deliveries pass through; the timeline deduplicates them.
    """

    def __init__(self, feed: ChangeFeed):
        self.feed = feed

    def subscribe(
        self,
        room_id: UUID,
        on_insert: Handler,
        on_update: Handler,
        on_delete: Handler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        stream = self.feed.subscribe(MESSAGE_TABLE, room_id=room_id)
        subscription = Subscription(room_id, stream)
        handlers: Dict[ChangeOp, Handler] = {
            ChangeOp.INSERT: on_insert,
            ChangeOp.UPDATE: on_update,
            ChangeOp.DELETE: on_delete,
        }
        subscription._task = asyncio.ensure_future(
            self._pump(subscription, stream, handlers, on_error)
        )
        log_subscription_event("subscribed", str(room_id))
        return subscription

    async def _pump(
        self,
        subscription: Subscription,
        stream: EventStream,
        handlers: Dict[ChangeOp, Handler],
        on_error: Optional[ErrorHandler],
    ) -> None:
        last_seq: Dict[str, int] = {}
        room_id = subscription.room_id
        try:
            async for event in stream:
                try:
                    row = MessageRecord.model_validate(event.row)
                except PydanticValidationError as e:
                    logger.error(
                        f"Skipping undecodable {event.op.value} seq {event.commit_seq} "
                        f"in room {room_id}: {e}"
                    )
                    log_subscription_event("malformed_event", str(room_id))
                    continue

                identity = event.row_id
                if identity is not None:
                    seen = last_seq.get(identity)
                    if seen is not None and event.commit_seq < seen:
                        logger.debug(
                            f"Dropping stale {event.op.value} for {identity} "
                            f"(seq {event.commit_seq} < {seen})"
                        )
                        continue
                    last_seq[identity] = event.commit_seq

                try:
                    await _call(handlers[event.op], row)
                except Exception as e:
                    logger.exception(
                        f"{event.op.value} handler failed for {identity} in room {room_id}: {e}"
                    )
        except Exception as e:
            if subscription._released:
                return
            if isinstance(e, TransientIO):
                error = e
            else:
                error = TransientIO(f"Subscription to room {room_id} ended unexpectedly")
                error.__cause__ = e
            logger.warning(f"Subscription to room {room_id} failed: {e!r}")
            log_subscription_event("failed", str(room_id), error=str(e))
            subscription._release_stream()
            try:
                await _call(on_error, error)
            except Exception as handler_error:
                logger.exception(
                    f"Error handler for room {room_id} failed: {handler_error}"
                )
        finally:
            subscription._release_stream()
