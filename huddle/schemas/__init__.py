"""Shared record schemas."""

from .records import (
    GroupRecord,
    InvitationInfo,
    InvitationPreview,
    JoinResult,
    MemberRecord,
    MessageRecord,
    RoomRecord,
    RoomSummary,
    SenderProfile,
)

__all__ = [
    "GroupRecord",
    "InvitationInfo",
    "InvitationPreview",
    "JoinResult",
    "MemberRecord",
    "MessageRecord",
    "RoomRecord",
    "RoomSummary",
    "SenderProfile",
]
