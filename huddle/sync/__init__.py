"""Client-side synchronization for Huddle rooms."""

from .backend import ChatBackend, LocalBackend
from .channel import Subscription, SubscriptionChannel
from .client import ChatClient
from .profiles import PLACEHOLDER_LABEL, ProfileCache
from .session import DisplayMessage, RoomSession
from .timeline import MessageTimeline, TimelineEntry
from .transport import WebSocketChangeFeed

__all__ = [
    "ChatBackend",
    "ChatClient",
    "DisplayMessage",
    "LocalBackend",
    "MessageTimeline",
    "PLACEHOLDER_LABEL",
    "ProfileCache",
    "RoomSession",
    "Subscription",
    "SubscriptionChannel",
    "TimelineEntry",
    "WebSocketChangeFeed",
]
