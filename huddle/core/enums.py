"""Shared enums used across the application."""

from enum import Enum


class GroupRole(str, Enum):
    """Role of a user inside a group."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class RoomType(str, Enum):
    """Chat room type."""

    GROUP = "group"
    DIRECT = "direct"


class MessageType(str, Enum):
    """Message payload type."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class ChangeOp(str, Enum):
    """Row-level change kinds pushed by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SubscriptionState(str, Enum):
    """Lifecycle of a room subscription on the client."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"


class EntryState(str, Enum):
    """Delivery state of a timeline entry."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
