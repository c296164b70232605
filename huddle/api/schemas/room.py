"""Room API request/response schemas."""

import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from huddle.schemas import MessageRecord, RoomRecord, RoomSummary, SenderProfile


# Request Models
class DirectRoomRequest(BaseModel):
    """Request model for resolving a direct room."""

    peer_id: uuid.UUID = Field(..., description="The other participant")


# Response Models
class RoomSummaryResponse(BaseModel):
    """A room in the room list."""

    room: RoomRecord
    display_name: str
    last_message: Optional[MessageRecord] = None
    other_user: Optional[SenderProfile] = None

    @classmethod
    def from_summary(cls, summary: RoomSummary) -> "RoomSummaryResponse":
        return cls(
            room=summary.room,
            display_name=summary.display_name,
            last_message=summary.last_message,
            other_user=summary.other_user,
        )


class RoomListResponse(BaseModel):
    """Response model for the user's rooms."""

    rooms: List[RoomSummaryResponse] = Field(..., description="Rooms, newest first")
    total: int
