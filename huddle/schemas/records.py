"""Transport-neutral records shared by services, the change feed and the sync client."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from huddle.core.enums import GroupRole, MessageType, RoomType


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Record(BaseModel):
    """Base record readable straight from ORM rows."""

    model_config = ConfigDict(from_attributes=True)


class SenderProfile(Record):
    """Display identity of a user."""

    id: uuid.UUID
    username: str
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.username


class MessageRecord(Record):
    """One message row as seen by clients."""

    id: uuid.UUID
    room_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    message_type: MessageType = MessageType.TEXT
    client_key: Optional[str] = None
    created_at: datetime
    edited_at: Optional[datetime] = None

    @field_validator("created_at", "edited_at")
    @classmethod
    def normalize_timezone(cls, v):
        """All timestamps are compared as UTC-aware values."""
        return _utc(v)


class RoomRecord(Record):
    id: uuid.UUID
    type: RoomType
    name: Optional[str] = None
    group_id: uuid.UUID
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timezone(cls, v):
        return _utc(v)


class RoomSummary(BaseModel):
    """A room in the user's room list."""

    room: RoomRecord
    last_message: Optional[MessageRecord] = None
    other_user: Optional[SenderProfile] = None

    @property
    def display_name(self) -> str:
        if self.room.type == RoomType.GROUP:
            return self.room.name or "Group Chat"
        return self.other_user.label if self.other_user else "Unknown user"


class GroupRecord(Record):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    invitation_enabled: bool
    created_at: datetime


class MemberRecord(Record):
    user_id: uuid.UUID
    role: GroupRole
    joined_at: datetime
    user: SenderProfile


class InvitationInfo(BaseModel):
    """Current invitation settings, visible to owners and admins."""

    group_id: uuid.UUID
    token: str
    link: str
    enabled: bool


class InvitationPreview(BaseModel):
    """What an invite link shows before it is accepted."""

    group_id: uuid.UUID
    group_name: str
    invitation_enabled: bool
    already_member: bool = False


class JoinResult(BaseModel):
    group_id: uuid.UUID
    group_name: str
    role: GroupRole
    already_member: bool
