"""WebSocket endpoint streaming a room's message changes."""

import asyncio
import json
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from huddle.core.auth_utils import decode_user_id
from huddle.core.errors import HuddleError
from huddle.core.logging import get_logger
from huddle.core.messaging.feed import FeedStream, LocalChangeFeed
from huddle.core.observability.metrics import log_connection_event
from huddle.dependencies import get_change_feed, get_room_service
from huddle.services.room_service import RoomService

logger = get_logger(__name__)

router = APIRouter()


async def _forward_changes(websocket: WebSocket, stream: FeedStream) -> None:
    async for event in stream:
        await websocket.send_text(
            json.dumps({"type": "change", **event.model_dump(mode="json")})
        )


async def _handle_client_frames(websocket: WebSocket) -> None:
    """Answer pings until the client goes away."""
    while True:
        raw = await websocket.receive_text()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_text(
                json.dumps({"type": "error", "message": "Invalid JSON format"})
            )
            continue
        if data.get("type") == "ping":
            await websocket.send_text(json.dumps({"type": "pong"}))


@router.websocket("/ws/rooms/{room_id}")
async def room_changes(
    websocket: WebSocket,
    room_id: UUID,
    room_service: Annotated[RoomService, Depends(get_room_service)],
    feed: Annotated[LocalChangeFeed, Depends(get_change_feed)],
    token: str = Query(...),
):
    """Stream INSERT/UPDATE/DELETE events for one room's messages."""
    await websocket.accept()

    user_id = decode_user_id(token)
    if user_id is None:
        await websocket.send_text(
            json.dumps({"type": "error", "message": "Could not validate credentials"})
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        await run_in_threadpool(room_service.authorize_room_access, user_id, room_id)
    except HuddleError as e:
        await websocket.send_text(json.dumps({"type": "error", **e.to_dict()}))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    stream = feed.subscribe("message", room_id=room_id)
    log_connection_event("connected", "websocket", room_id=str(room_id))
    logger.info(f"User {user_id} subscribed to room {room_id} over WebSocket")

    tasks = []
    try:
        await websocket.send_text(
            json.dumps({"type": "subscription.confirmed", "room_id": str(room_id)})
        )
        tasks = [
            asyncio.ensure_future(_forward_changes(websocket, stream)),
            asyncio.ensure_future(_handle_client_frames(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is None or isinstance(error, WebSocketDisconnect):
                continue
            logger.error(f"WebSocket for room {room_id} failed: {error}")
            if isinstance(error, HuddleError):
                await websocket.send_text(
                    json.dumps({"type": "error", **error.to_dict()})
                )
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    except WebSocketDisconnect:
        logger.info(f"WebSocket for room {room_id} disconnected")
    finally:
        for task in tasks:
            task.cancel()
        stream.close()
        log_connection_event("disconnected", "websocket", room_id=str(room_id))
        logger.info(f"User {user_id} left room {room_id} stream")
