"""SQLAlchemy models for Huddle."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import declarative_base

# Create the declarative base
Base: Any = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware current time used for server-assigned timestamps."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from stores without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Import all models so they're registered with Base.metadata
from .group import Group, GroupMembership  # noqa: E402
from .message import Message  # noqa: E402
from .room import ChatRoom, RoomMembership  # noqa: E402
from .user import User  # noqa: E402

__all__ = [
    "Base",
    "utcnow",
    "as_utc",
    "User",
    "Group",
    "GroupMembership",
    "ChatRoom",
    "RoomMembership",
    "Message",
]
