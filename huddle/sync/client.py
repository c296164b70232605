"""Caller-facing chat client bound to one signed-in user."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from huddle.core.config import Settings, get_settings
from huddle.core.enums import MessageType, SubscriptionState
from huddle.core.logging import get_logger
from huddle.schemas import (
    InvitationInfo,
    JoinResult,
    MessageRecord,
    RoomRecord,
    RoomSummary,
    SenderProfile,
)
from huddle.sync.backend import ChatBackend
from huddle.sync.channel import ChangeFeed, SubscriptionChannel
from huddle.sync.profiles import ProfileCache
from huddle.sync.session import ErrorListener, Listener, RoomSession

logger = get_logger(__name__)


class ChatClient:
    """Owns the profile cache and the session of the currently focused room.

    Focusing another room closes the previous room's session; sends already
    in flight in that room still complete.
    """

    def __init__(
        self,
        backend: ChatBackend,
        feed: ChangeFeed,
        settings: Optional[Settings] = None,
        me: Optional[SenderProfile] = None,
    ):
        self.backend = backend
        self.user_id = backend.user_id
        self.settings = settings or get_settings()
        self.channel = SubscriptionChannel(feed)
        self.profiles = ProfileCache(backend.get_profiles)
        if me is not None:
            self.profiles.prime(me)
        self.session: Optional[RoomSession] = None

    # Rooms

    async def resolve_group_room(self, group_id: UUID) -> RoomRecord:
        return await self.backend.resolve_group_room(group_id)

    async def resolve_direct_room(self, peer_id: UUID, group_id: UUID) -> RoomRecord:
        return await self.backend.resolve_direct_room(peer_id, group_id)

    async def list_rooms(self) -> List[RoomSummary]:
        return await self.backend.list_rooms()

    def open_room(
        self,
        room_id: UUID,
        on_change: Optional[Listener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> RoomSession:
        """Build an unopened session for a room without touching the focus."""
        return RoomSession(
            room_id,
            self.user_id,
            self.backend,
            self.channel,
            self.profiles,
            page_size=self.settings.MESSAGE_PAGE_SIZE,
            max_attempts=self.settings.RESUBSCRIBE_MAX_ATTEMPTS,
            base_delay=self.settings.RESUBSCRIBE_BASE_DELAY,
            on_change=on_change,
            on_error=on_error,
        )

    async def focus_room(
        self,
        room_id: UUID,
        on_change: Optional[Listener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> RoomSession:
        """Switch the live view to a room, tearing down the previous one."""
        if self.session is not None and self.session.room_id == room_id:
            if self.session.state == SubscriptionState.ERROR:
                logger.info(f"Retrying room {room_id}")
                await self.session.resubscribe()
            return self.session
        if self.session is not None:
            logger.info(f"Leaving room {self.session.room_id}")
            await self.session.close()
            self.session = None

        session = self.open_room(room_id, on_change=on_change, on_error=on_error)
        self.session = session
        await session.open()
        return session

    subscribe_room = focus_room

    # Messages

    async def load_messages(
        self,
        room_id: UUID,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_id: Optional[UUID] = None,
    ) -> List[MessageRecord]:
        return await self.backend.load_messages(
            room_id, limit=limit, before=before, before_id=before_id
        )

    def _session_for(self, room_id: UUID) -> Optional[RoomSession]:
        if self.session is not None and self.session.room_id == room_id:
            return self.session
        return None

    async def send_message(
        self, room_id: UUID, content: str, message_type: MessageType = MessageType.TEXT
    ) -> MessageRecord:
        """Optimistic when the room is focused, a plain round trip otherwise."""
        session = self._session_for(room_id)
        if session is not None:
            return await session.send(content, message_type)
        return await self.backend.send_message(room_id, content, message_type)

    async def edit_message(self, message_id: UUID, content: str) -> MessageRecord:
        if self.session is not None and self.session.timeline.get(message_id):
            return await self.session.edit(message_id, content)
        return await self.backend.edit_message(message_id, content)

    async def delete_message(self, message_id: UUID) -> None:
        if self.session is not None and self.session.timeline.get(message_id):
            await self.session.delete(message_id)
            return
        await self.backend.delete_message(message_id)

    # Invitations

    async def join_via_token(self, token: str) -> JoinResult:
        return await self.backend.join_via_token(token)

    async def set_invitation_enabled(
        self, group_id: UUID, enabled: bool
    ) -> InvitationInfo:
        return await self.backend.set_invitation_enabled(group_id, enabled)

    async def regenerate_token(self, group_id: UUID) -> InvitationInfo:
        return await self.backend.regenerate_token(group_id)

    async def aclose(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
        self.profiles.invalidate()
