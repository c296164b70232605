"""Change feed infrastructure for Huddle."""

from .feed import ChangeEvent, FeedStream, LocalChangeFeed

__all__ = [
    "ChangeEvent",
    "FeedStream",
    "LocalChangeFeed",
]
