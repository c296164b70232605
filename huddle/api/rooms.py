"""Room listing and message endpoints."""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from huddle.api.schemas import (
    EditMessageRequest,
    MessageHistoryResponse,
    RoomListResponse,
    RoomSummaryResponse,
    SendMessageRequest,
)
from huddle.core.auth_utils import get_current_user_id
from huddle.dependencies import get_message_service, get_room_service
from huddle.schemas import MessageRecord
from huddle.services.message_service import MessageService
from huddle.services.room_service import RoomService

router = APIRouter(tags=["rooms"])

CurrentUser = Annotated[UUID, Depends(get_current_user_id)]


@router.get("/rooms", response_model=RoomListResponse)
def list_rooms(
    current_user_id: CurrentUser,
    room_service: Annotated[RoomService, Depends(get_room_service)],
) -> RoomListResponse:
    """Rooms visible to the caller, most recently active first."""
    summaries = room_service.list_rooms(current_user_id)
    rooms = [RoomSummaryResponse.from_summary(s) for s in summaries]
    return RoomListResponse(rooms=rooms, total=len(rooms))


@router.get(
    "/rooms/{room_id}/messages",
    response_model=MessageHistoryResponse,
    summary="Get room message history",
    description=(
        "Newest messages first. Pass `next_cursor` as `before` and "
        "`next_cursor_id` as `before_id` to page back."
    ),
)
def get_room_messages(
    room_id: UUID,
    current_user_id: CurrentUser,
    message_service: Annotated[MessageService, Depends(get_message_service)],
    limit: int = Query(50, ge=1, le=100, description="Number of messages to retrieve"),
    before: Optional[datetime] = Query(
        None, description="Only messages created before this timestamp"
    ),
    before_id: Optional[UUID] = Query(
        None, description="Tie-break for `before`: id of the oldest message already seen"
    ),
) -> MessageHistoryResponse:
    """Get room message history with pagination."""
    messages = message_service.load_messages(
        current_user_id, room_id, limit, before, before_id
    )
    has_more = len(messages) == limit
    oldest = messages[-1] if has_more else None
    return MessageHistoryResponse(
        messages=messages,
        has_more=has_more,
        next_cursor=oldest.created_at if oldest else None,
        next_cursor_id=oldest.id if oldest else None,
    )


@router.post(
    "/rooms/{room_id}/messages",
    response_model=MessageRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message to a room",
)
def send_message(
    room_id: UUID,
    request: SendMessageRequest,
    current_user_id: CurrentUser,
    message_service: Annotated[MessageService, Depends(get_message_service)],
) -> MessageRecord:
    """Send a message; resending with the same client key returns the original."""
    return message_service.send_message(
        current_user_id,
        room_id,
        request.content,
        message_type=request.message_type,
        client_key=request.client_key,
    )


@router.patch("/messages/{message_id}", response_model=MessageRecord)
def edit_message(
    message_id: UUID,
    request: EditMessageRequest,
    current_user_id: CurrentUser,
    message_service: Annotated[MessageService, Depends(get_message_service)],
) -> MessageRecord:
    """Edit one of the caller's messages."""
    return message_service.edit_message(current_user_id, message_id, request.content)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: UUID,
    current_user_id: CurrentUser,
    message_service: Annotated[MessageService, Depends(get_message_service)],
) -> None:
    """Delete one of the caller's messages."""
    message_service.delete_message(current_user_id, message_id)
