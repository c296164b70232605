"""Repository layer for data access."""

from .group_repo import GroupRepo, TokenJoinResult
from .message_repo import MessageRepo
from .room_repo import RoomRepo
from .transaction import transaction_scope
from .user_repo import UserRepo

__all__ = [
    "UserRepo",
    "GroupRepo",
    "TokenJoinResult",
    "RoomRepo",
    "MessageRepo",
    "transaction_scope",
]
