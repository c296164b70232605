"""FastAPI dependencies for dependency injection."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from huddle.core.messaging.feed import LocalChangeFeed
from huddle.db.db import get_session_local
from huddle.repositories.group_repo import GroupRepo
from huddle.repositories.message_repo import MessageRepo
from huddle.repositories.room_repo import RoomRepo
from huddle.repositories.user_repo import UserRepo
from huddle.services.group_service import GroupService
from huddle.services.invitation_service import InvitationService
from huddle.services.message_service import MessageService
from huddle.services.room_service import RoomService


def get_session_factory() -> sessionmaker:
    """Session factory shared by all repositories."""
    return get_session_local()


@lru_cache
def get_change_feed() -> LocalChangeFeed:
    """Process-wide change feed hub."""
    return LocalChangeFeed()


def get_user_repo(factory: sessionmaker = Depends(get_session_factory)) -> UserRepo:
    """Get UserRepo instance with session factory."""
    return UserRepo(factory)


def get_group_repo(factory: sessionmaker = Depends(get_session_factory)) -> GroupRepo:
    """Get GroupRepo instance with session factory."""
    return GroupRepo(factory)


def get_room_repo(factory: sessionmaker = Depends(get_session_factory)) -> RoomRepo:
    """Get RoomRepo instance with session factory."""
    return RoomRepo(factory)


def get_message_repo(
    factory: sessionmaker = Depends(get_session_factory),
) -> MessageRepo:
    """Get MessageRepo instance with session factory."""
    return MessageRepo(factory)


def get_group_service(
    group_repo: GroupRepo = Depends(get_group_repo),
    user_repo: UserRepo = Depends(get_user_repo),
) -> GroupService:
    """Get GroupService instance with dependencies."""
    return GroupService(group_repo, user_repo)


def get_invitation_service(
    group_repo: GroupRepo = Depends(get_group_repo),
) -> InvitationService:
    """Get InvitationService instance with dependencies."""
    return InvitationService(group_repo)


def get_room_service(
    room_repo: RoomRepo = Depends(get_room_repo),
    group_repo: GroupRepo = Depends(get_group_repo),
    user_repo: UserRepo = Depends(get_user_repo),
    message_repo: MessageRepo = Depends(get_message_repo),
) -> RoomService:
    """Get RoomService instance with dependencies."""
    return RoomService(room_repo, group_repo, user_repo, message_repo)


def get_message_service(
    message_repo: MessageRepo = Depends(get_message_repo),
    user_repo: UserRepo = Depends(get_user_repo),
    room_service: RoomService = Depends(get_room_service),
    feed: LocalChangeFeed = Depends(get_change_feed),
) -> MessageService:
    """Get MessageService instance with dependencies."""
    return MessageService(message_repo, user_repo, room_service, feed=feed)
