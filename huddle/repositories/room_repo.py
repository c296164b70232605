"""Chat room repository."""

from datetime import datetime
from typing import Callable, List, Optional, Tuple, cast
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from huddle.core.enums import RoomType
from huddle.core.errors import TransientIO, ValidationError
from huddle.core.logging import get_logger
from huddle.models.room import ChatRoom, RoomMembership
from huddle.repositories.base_repo import BaseRepo
from huddle.repositories.transaction import transaction_scope

logger = get_logger(__name__)


class RoomRepo(BaseRepo):
    """Chat room repository."""

    def get_room_by_id(
        self, room_id: UUID, session: Optional[Session] = None
    ) -> Optional[ChatRoom]:
        """Get a room by ID."""
        return cast(
            Optional[ChatRoom],
            self._execute_with_session(
                lambda s: s.query(ChatRoom).filter(ChatRoom.id == room_id).one_or_none(),
                session=session,
                operation_name="get_room_by_id",
            ),
        )

    def get_room_by_key(
        self, room_key: str, session: Optional[Session] = None
    ) -> Optional[ChatRoom]:
        """Get a room by its canonical key."""
        return cast(
            Optional[ChatRoom],
            self._execute_with_session(
                lambda s: ChatRoom.find_by_key(s, room_key),
                session=session,
                operation_name="get_room_by_key",
            ),
        )

    def _get_or_create(
        self, room_key: str, build: Callable[[Session], ChatRoom], operation_name: str
    ) -> Tuple[ChatRoom, bool]:
        """Find the room for a key or create it, converging concurrent creators.

        Creation runs in its own transaction. Losing the race surfaces as a
        unique violation on room_key, which is answered by reading the
        winner's row.
        """
        existing = self.get_room_by_key(room_key)
        if existing:
            logger.debug(f"Returning existing room {existing.id} for {room_key}")
            return existing, False

        try:
            with transaction_scope(self.session_factory) as session:
                room = build(session)
        except IntegrityError:
            logger.info(f"Room creation race lost for {room_key}, reading winner")
            winner = self.get_room_by_key(room_key)
            if winner is None:
                raise
            return winner, False
        except (OperationalError, InterfaceError) as e:
            self._log_error(operation_name, e)
            raise TransientIO(f"Store unavailable during {operation_name}") from e

        logger.info(f"Created room {room.id} for {room_key}")
        return room, True

    def get_or_create_group_room(
        self, group_id: UUID, name: str, creator_id: UUID
    ) -> Tuple[ChatRoom, bool]:
        """Atomic get-or-insert of the single group room of a group."""
        room_key = ChatRoom.group_room_key(group_id)

        def build(session: Session) -> ChatRoom:
            room = ChatRoom(
                type=RoomType.GROUP,
                room_key=room_key,
                name=name,
                group_id=group_id,
                created_by=creator_id,
            )
            session.add(room)
            session.flush()
            return room

        return self._get_or_create(room_key, build, "get_or_create_group_room")

    def get_or_create_direct_room(
        self, group_id: UUID, user1_id: UUID, user2_id: UUID
    ) -> Tuple[ChatRoom, bool]:
        """Atomic get-or-insert of the direct room for an unordered user pair."""
        if user1_id == user2_id:
            raise ValidationError("Cannot create a direct room with the same user")

        room_key = ChatRoom.direct_room_key(user1_id, user2_id, group_id)

        def build(session: Session) -> ChatRoom:
            room = ChatRoom(
                type=RoomType.DIRECT,
                room_key=room_key,
                group_id=group_id,
                created_by=user1_id,
            )
            session.add(room)
            session.flush()  # Generate ID

            # Both participants become members in the same transaction
            session.add(RoomMembership(room_id=room.id, user_id=user1_id))
            session.add(RoomMembership(room_id=room.id, user_id=user2_id))
            session.flush()
            return room

        return self._get_or_create(room_key, build, "get_or_create_direct_room")

    def is_room_member(
        self, room_id: UUID, user_id: UUID, session: Optional[Session] = None
    ) -> bool:
        """Check for an explicit RoomMembership row."""
        return cast(
            bool,
            self._execute_with_session(
                lambda s: s.query(RoomMembership)
                .filter(
                    RoomMembership.room_id == room_id,
                    RoomMembership.user_id == user_id,
                )
                .first()
                is not None,
                session=session,
                operation_name="is_room_member",
            ),
        )

    def get_room_members(
        self, room_id: UUID, session: Optional[Session] = None
    ) -> List[RoomMembership]:
        """Get explicit members of a room."""
        return cast(
            List[RoomMembership],
            self._execute_with_session(
                lambda s: s.query(RoomMembership)
                .filter(RoomMembership.room_id == room_id)
                .order_by(RoomMembership.joined_at.asc())
                .all(),
                session=session,
                operation_name="get_room_members",
            ),
        )

    def _get_user_rooms_implementation(
        self, session: Session, user_id: UUID, group_ids: List[UUID]
    ) -> List[ChatRoom]:
        direct_room_ids = session.query(RoomMembership.room_id).filter(
            RoomMembership.user_id == user_id
        )
        conditions = [ChatRoom.id.in_(direct_room_ids)]
        if group_ids:
            conditions.append(
                (ChatRoom.type == RoomType.GROUP) & ChatRoom.group_id.in_(group_ids)
            )
        return cast(
            List[ChatRoom],
            session.query(ChatRoom)
            .filter(or_(*conditions))
            .order_by(ChatRoom.updated_at.desc())
            .all(),
        )

    def get_user_rooms(
        self,
        user_id: UUID,
        group_ids: List[UUID],
        session: Optional[Session] = None,
    ) -> List[ChatRoom]:
        """Rooms visible to a user, most recently active first."""
        return cast(
            List[ChatRoom],
            self._execute_with_session(
                lambda s: self._get_user_rooms_implementation(s, user_id, group_ids),
                session=session,
                operation_name="get_user_rooms",
            ),
        )

    def touch_room(
        self, room_id: UUID, updated_at: datetime, session: Optional[Session] = None
    ) -> None:
        """Bump a room's updated_at after activity."""
        self._execute_with_session(
            lambda s: s.query(ChatRoom)
            .filter(ChatRoom.id == room_id)
            .update({ChatRoom.updated_at: updated_at}, synchronize_session=False),
            session=session,
            operation_name="touch_room",
        )
