"""Remote change feed over the server's WebSocket endpoint."""

import asyncio
import json
from typing import Any, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from huddle.core.errors import TransientIO
from huddle.core.logging import get_logger
from huddle.core.messaging.feed import ChangeEvent

logger = get_logger(__name__)


class WebSocketStream:
    """One room subscription; connects lazily on first iteration."""

    def __init__(self, url: str, connect=websockets.connect):
        self.url = url
        self._connect = connect
        self._ws = None
        self._closed = False
        self._closing: Optional[asyncio.Future] = None

    def __aiter__(self):
        return self

    async def _ensure_connected(self):
        if self._ws is None:
            try:
                self._ws = await self._connect(self.url)
            except (OSError, WebSocketException) as e:
                raise TransientIO("Could not connect to the change feed") from e
        return self._ws

    async def __anext__(self) -> ChangeEvent:
        while True:
            if self._closed:
                raise StopAsyncIteration
            ws = await self._ensure_connected()
            try:
                raw = await ws.recv()
            except ConnectionClosed as e:
                if self._closed:
                    raise StopAsyncIteration
                raise TransientIO("Change feed connection lost") from e

            try:
                data = json.loads(raw)
                frame_type = data.get("type")
                if frame_type == "change":
                    return ChangeEvent.model_validate(data)
            except (ValueError, AttributeError) as e:
                raise TransientIO("Undecodable change feed frame") from e

            if frame_type == "subscription.confirmed":
                logger.debug(f"Subscription confirmed for {data.get('room_id')}")
            elif frame_type == "ping":
                await ws.send(json.dumps({"type": "pong"}))
            elif frame_type == "error":
                raise TransientIO(data.get("message") or "Change feed error")
            else:
                logger.warning(f"Ignoring unknown frame type: {frame_type}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            self._closing = asyncio.ensure_future(self._ws.close())


class WebSocketChangeFeed:
    """Change feed client for a remote server, authenticated with a bearer JWT."""

    def __init__(self, base_url: str, access_token: str, connect=websockets.connect):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self._connect = connect

    def url_for(self, room_id: Any) -> str:
        query = urlencode({"token": self.access_token})
        return f"{self.base_url}/ws/rooms/{room_id}?{query}"

    def subscribe(self, table: str, **filters: Any) -> WebSocketStream:
        if table != "message" or "room_id" not in filters:
            raise ValueError("Remote feed only serves message changes of one room")
        return WebSocketStream(self.url_for(filters["room_id"]), connect=self._connect)
