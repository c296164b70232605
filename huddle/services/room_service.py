"""Room resolution: get-or-create group and direct rooms."""

from typing import Dict, List
from uuid import UUID

from huddle.core.enums import RoomType
from huddle.core.errors import InvalidTarget, NotAuthorized, NotFound, ValidationError
from huddle.core.logging import get_logger
from huddle.models.room import ChatRoom
from huddle.repositories.group_repo import GroupRepo
from huddle.repositories.message_repo import MessageRepo
from huddle.repositories.room_repo import RoomRepo
from huddle.repositories.user_repo import UserRepo
from huddle.schemas import MessageRecord, RoomRecord, RoomSummary, SenderProfile
from huddle.services.access import require_group, require_membership

logger = get_logger(__name__)


class RoomService:
    """Resolves rooms exactly once per key, whatever the number of callers."""

    def __init__(
        self,
        room_repo: RoomRepo,
        group_repo: GroupRepo,
        user_repo: UserRepo,
        message_repo: MessageRepo,
    ):
        """Initialize the room service."""
        self.room_repo = room_repo
        self.group_repo = group_repo
        self.user_repo = user_repo
        self.message_repo = message_repo

    def resolve_group_room(self, user_id: UUID, group_id: UUID) -> RoomRecord:
        """Return the group's single room, creating it on first access."""
        logger.info(f"Resolving group room for group {group_id} by user {user_id}")
        group = require_group(self.group_repo, group_id)
        require_membership(self.group_repo, group_id, user_id)

        room, created = self.room_repo.get_or_create_group_room(
            group_id, group.name, user_id
        )
        if created:
            logger.info(f"Created group room {room.id} for group {group_id}")
        return RoomRecord.model_validate(room)

    def resolve_direct_room(
        self, user_id: UUID, peer_id: UUID, group_id: UUID
    ) -> RoomRecord:
        """Return the direct room for (user, peer) in a group, creating it once."""
        logger.info(
            f"Resolving direct room between {user_id} and {peer_id} in group {group_id}"
        )
        require_group(self.group_repo, group_id)
        require_membership(self.group_repo, group_id, user_id)

        # Business rule: Users cannot open a direct room with themselves
        if user_id == peer_id:
            raise ValidationError("Cannot start a direct conversation with yourself")

        if self.group_repo.get_membership(group_id, peer_id) is None:
            raise InvalidTarget()

        room, created = self.room_repo.get_or_create_direct_room(
            group_id, user_id, peer_id
        )
        if created:
            logger.info(f"Created direct room {room.id}")
        return RoomRecord.model_validate(room)

    def authorize_room_access(self, user_id: UUID, room_id: UUID) -> ChatRoom:
        """Group rooms are open to group members, direct rooms to their two participants."""
        room = self.room_repo.get_room_by_id(room_id)
        if room is None:
            raise NotFound(f"Room {room_id} not found", room_id=str(room_id))

        if room.type == RoomType.GROUP:
            allowed = self.group_repo.get_membership(room.group_id, user_id) is not None
        else:
            allowed = self.room_repo.is_room_member(room_id, user_id)
        if not allowed:
            raise NotAuthorized("You are not a member of this room")
        return room

    def list_rooms(self, user_id: UUID) -> List[RoomSummary]:
        """Rooms the user can see, most recently active first."""
        group_ids = [m.group_id for m in self.group_repo.get_user_memberships(user_id)]
        rooms = self.room_repo.get_user_rooms(user_id, group_ids)

        peers: Dict[UUID, UUID] = {}
        for room in rooms:
            if room.type != RoomType.DIRECT:
                continue
            for member in self.room_repo.get_room_members(room.id):
                if member.user_id != user_id:
                    peers[room.id] = member.user_id

        profiles = {
            user.id: SenderProfile.model_validate(user)
            for user in self.user_repo.get_users_by_ids(list(peers.values()))
        }

        summaries = []
        for room in rooms:
            last = self.message_repo.get_last_message(room.id)
            summaries.append(
                RoomSummary(
                    room=RoomRecord.model_validate(room),
                    last_message=MessageRecord.model_validate(last) if last else None,
                    other_user=profiles.get(peers.get(room.id)),
                )
            )
        logger.debug(f"User {user_id} sees {len(summaries)} rooms")
        return summaries
