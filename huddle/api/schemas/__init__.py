"""API schemas package."""

from .error import ErrorResponse
from .group import (
    CreateGroupRequest,
    GroupCreatedResponse,
    InvitationSettingsRequest,
    MemberListResponse,
)
from .message import EditMessageRequest, MessageHistoryResponse, SendMessageRequest
from .room import DirectRoomRequest, RoomListResponse, RoomSummaryResponse

__all__ = [
    "CreateGroupRequest",
    "DirectRoomRequest",
    "EditMessageRequest",
    "ErrorResponse",
    "GroupCreatedResponse",
    "InvitationSettingsRequest",
    "MemberListResponse",
    "MessageHistoryResponse",
    "RoomListResponse",
    "RoomSummaryResponse",
    "SendMessageRequest",
]
