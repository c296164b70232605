"""Round trips the sync client makes, and the in-process implementation."""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol
from uuid import UUID

from fastapi.concurrency import run_in_threadpool

from huddle.core.enums import MessageType
from huddle.schemas import (
    InvitationInfo,
    JoinResult,
    MessageRecord,
    RoomRecord,
    RoomSummary,
    SenderProfile,
)
from huddle.services.invitation_service import InvitationService
from huddle.services.message_service import MessageService
from huddle.services.room_service import RoomService


class ChatBackend(Protocol):
    """Everything a client needs from the server, already bound to one user."""

    user_id: UUID

    async def resolve_group_room(self, group_id: UUID) -> RoomRecord: ...

    async def resolve_direct_room(self, peer_id: UUID, group_id: UUID) -> RoomRecord: ...

    async def list_rooms(self) -> List[RoomSummary]: ...

    async def load_messages(
        self,
        room_id: UUID,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_id: Optional[UUID] = None,
    ) -> List[MessageRecord]: ...

    async def send_message(
        self,
        room_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        client_key: Optional[str] = None,
    ) -> MessageRecord: ...

    async def edit_message(self, message_id: UUID, content: str) -> MessageRecord: ...

    async def delete_message(self, message_id: UUID) -> MessageRecord: ...

    async def get_profiles(self, user_ids: List[UUID]) -> List[SenderProfile]: ...

    async def join_via_token(self, token: str) -> JoinResult: ...

    async def set_invitation_enabled(
        self, group_id: UUID, enabled: bool
    ) -> InvitationInfo: ...

    async def regenerate_token(self, group_id: UUID) -> InvitationInfo: ...


class LocalBackend:
    """Calls the services directly, off the event loop."""

    def __init__(
        self,
        user_id: UUID,
        room_service: RoomService,
        message_service: MessageService,
        invitation_service: InvitationService,
    ):
        self.user_id = user_id
        self.room_service = room_service
        self.message_service = message_service
        self.invitation_service = invitation_service

    async def resolve_group_room(self, group_id: UUID) -> RoomRecord:
        return await run_in_threadpool(
            self.room_service.resolve_group_room, self.user_id, group_id
        )

    async def resolve_direct_room(self, peer_id: UUID, group_id: UUID) -> RoomRecord:
        return await run_in_threadpool(
            self.room_service.resolve_direct_room, self.user_id, peer_id, group_id
        )

    async def list_rooms(self) -> List[RoomSummary]:
        return await run_in_threadpool(self.room_service.list_rooms, self.user_id)

    async def load_messages(
        self,
        room_id: UUID,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_id: Optional[UUID] = None,
    ) -> List[MessageRecord]:
        return await run_in_threadpool(
            self.message_service.load_messages,
            self.user_id,
            room_id,
            limit,
            before,
            before_id,
        )

    async def send_message(
        self,
        room_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        client_key: Optional[str] = None,
    ) -> MessageRecord:
        return await run_in_threadpool(
            self.message_service.send_message,
            self.user_id,
            room_id,
            content,
            message_type,
            client_key,
        )

    async def edit_message(self, message_id: UUID, content: str) -> MessageRecord:
        return await run_in_threadpool(
            self.message_service.edit_message, self.user_id, message_id, content
        )

    async def delete_message(self, message_id: UUID) -> MessageRecord:
        return await run_in_threadpool(
            self.message_service.delete_message, self.user_id, message_id
        )

    async def get_profiles(self, user_ids: Iterable[UUID]) -> List[SenderProfile]:
        return await run_in_threadpool(self.message_service.get_profiles, list(user_ids))

    async def join_via_token(self, token: str) -> JoinResult:
        return await run_in_threadpool(
            self.invitation_service.join_via_token, token, self.user_id
        )

    async def set_invitation_enabled(
        self, group_id: UUID, enabled: bool
    ) -> InvitationInfo:
        return await run_in_threadpool(
            self.invitation_service.set_invitation_enabled,
            self.user_id,
            group_id,
            enabled,
        )

    async def regenerate_token(self, group_id: UUID) -> InvitationInfo:
        return await run_in_threadpool(
            self.invitation_service.regenerate_token, self.user_id, group_id
        )
