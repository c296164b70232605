"""In-process change feed.

Committed row changes are published once by the server-side services and
fanned out to every subscription whose table and filters match. Publishing is
thread-safe (services run in worker threads); delivery happens on the event
loop that owns each subscription.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel

from huddle.core.enums import ChangeOp
from huddle.core.errors import TransientIO
from huddle.core.observability.metrics import log_counter_increment, log_gauge_set

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChangeEvent(BaseModel):
    """A committed row mutation."""

    op: ChangeOp
    table: str
    row: Dict[str, Any]
    commit_seq: int

    @property
    def row_id(self) -> Optional[str]:
        value = self.row.get("id")
        return str(value) if value is not None else None


class FeedStream:
    """One filtered subscription, consumed with ``async for``."""

    def __init__(
        self,
        feed: "LocalChangeFeed",
        table: str,
        filters: Dict[str, Any],
        loop: asyncio.AbstractEventLoop,
    ):
        self._feed = feed
        self.table = table
        self.filters = {key: str(value) for key, value in filters.items()}
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return all(
            str(event.row.get(key)) == value for key, value in self.filters.items()
        )

    def _push(self, item: Any) -> bool:
        """Hand an item to the owning loop; False if that loop is gone."""
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            return True
        except RuntimeError:
            return False

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._closed = True
            raise TransientIO("Change feed connection lost") from item
        return item

    def close(self) -> None:
        """Release the subscription; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        self._push(_CLOSED)


class LocalChangeFeed:
    """Thread-safe publish/subscribe hub for committed row changes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._streams: Set[FeedStream] = set()
        self._sinks: List[Callable[[ChangeEvent], None]] = []
        self._commit_seq = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._streams)

    def subscribe(self, table: str, **filters: Any) -> FeedStream:
        """Open a subscription bound to the running event loop."""
        stream = FeedStream(self, table, filters, asyncio.get_running_loop())
        with self._lock:
            self._streams.add(stream)
            count = len(self._streams)
        log_gauge_set("feed_subscribers", count)
        logger.debug(f"Feed subscription opened on {table} with {stream.filters}")
        return stream

    def _remove(self, stream: FeedStream) -> None:
        with self._lock:
            self._streams.discard(stream)
            count = len(self._streams)
        log_gauge_set("feed_subscribers", count)

    def add_sink(self, sink: Callable[[ChangeEvent], None]) -> None:
        """Register a callable that receives every event (e.g. a broker relay)."""
        self._sinks.append(sink)

    def publish(self, op: ChangeOp, table: str, row: Dict[str, Any]) -> ChangeEvent:
        """Publish a committed change to all matching subscriptions."""
        with self._lock:
            self._commit_seq += 1
            event = ChangeEvent(op=op, table=table, row=row, commit_seq=self._commit_seq)
            # Delivering under the lock keeps queue order equal to commit_seq order
            dead = [
                stream
                for stream in self._streams
                if stream.matches(event) and not stream._push(event)
            ]
            for stream in dead:
                self._streams.discard(stream)

        log_counter_increment(
            "feed_events_published_total", labels={"table": table, "op": op.value}
        )

        for sink in self._sinks:
            try:
                sink(event)
            except Exception as e:
                # The write is already committed; a relay failure must not undo it
                logger.error(f"Change feed sink failed for seq {event.commit_seq}: {e}")
                log_counter_increment(
                    "feed_sink_errors_total", labels={"table": table}
                )
        return event

    def fail_all(self, error: BaseException) -> None:
        """Break every open subscription with a transport error."""
        with self._lock:
            streams = list(self._streams)
            self._streams.clear()
        for stream in streams:
            stream._push(error)
        logger.warning(f"Change feed failed {len(streams)} subscriptions: {error}")
