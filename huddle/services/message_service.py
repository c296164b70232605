"""Message service for business logic."""

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from huddle.core.config import Settings, get_settings
from huddle.core.enums import ChangeOp, MessageType
from huddle.core.errors import NotAuthorized, NotFound, ValidationError
from huddle.core.logging import get_logger
from huddle.core.messaging.feed import LocalChangeFeed
from huddle.core.validation import validate_content
from huddle.models import as_utc
from huddle.models.message import Message
from huddle.repositories.message_repo import MessageRepo
from huddle.repositories.user_repo import UserRepo
from huddle.schemas import MessageRecord, SenderProfile
from huddle.services.room_service import RoomService

logger = get_logger(__name__)

# Business rules constants
MAX_CLIENT_KEY_LENGTH = 64
MESSAGE_TABLE = "message"


class MessageService:
    """Message service for business logic.

    Every committed insert, edit and delete is published to the change feed
    after the write returns, so subscribers only ever see durable rows.
    """

    def __init__(
        self,
        message_repo: MessageRepo,
        user_repo: UserRepo,
        room_service: RoomService,
        feed: Optional[LocalChangeFeed] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the message service."""
        self.message_repo = message_repo
        self.user_repo = user_repo
        self.room_service = room_service
        self.feed = feed
        self.settings = settings or get_settings()

    def _publish(self, op: ChangeOp, record: MessageRecord) -> None:
        if self.feed is not None:
            self.feed.publish(op, MESSAGE_TABLE, record.model_dump(mode="json"))

    def send_message(
        self,
        user_id: UUID,
        room_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        client_key: Optional[str] = None,
    ) -> MessageRecord:
        """Send a message; retries with the same client key return the stored row."""
        logger.info(f"Sending message to room {room_id} from user {user_id}")

        validate_content(content)
        if client_key is not None and (
            not client_key or len(client_key) > MAX_CLIENT_KEY_LENGTH
        ):
            raise ValidationError("Malformed client key")

        self.room_service.authorize_room_access(user_id, room_id)

        message, created = self.message_repo.create_message(
            room_id=room_id,
            sender_id=user_id,
            content=content,
            message_type=message_type,
            client_key=client_key,
        )
        record = MessageRecord.model_validate(message)
        if created:
            self._publish(ChangeOp.INSERT, record)
        else:
            logger.info(f"Send with client key {client_key} was a retry of {record.id}")
        return record

    def load_messages(
        self,
        user_id: UUID,
        room_id: UUID,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_id: Optional[UUID] = None,
    ) -> List[MessageRecord]:
        """Newest messages first, optionally older than the (``before``, ``before_id``) cursor."""
        if limit is None:
            limit = self.settings.MESSAGE_PAGE_SIZE
        if limit < 1 or limit > self.settings.MAX_MESSAGE_PAGE_SIZE:
            raise ValidationError(
                f"Limit must be between 1 and {self.settings.MAX_MESSAGE_PAGE_SIZE}"
            )

        self.room_service.authorize_room_access(user_id, room_id)
        messages = self.message_repo.get_recent_messages(
            room_id,
            limit=limit,
            before=as_utc(before) if before is not None else None,
            before_id=before_id,
        )
        logger.debug(f"Loaded {len(messages)} messages from room {room_id}")
        return [MessageRecord.model_validate(m) for m in messages]

    def _require_own_message(self, user_id: UUID, message_id: UUID) -> Message:
        message = self.message_repo.get_message_by_id(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        # Business rule: Only the sender can change or remove a message
        if message.sender_id != user_id:
            raise NotAuthorized("You can only modify your own messages")
        return message

    def edit_message(
        self, user_id: UUID, message_id: UUID, content: str
    ) -> MessageRecord:
        """Replace the content of one of the caller's messages."""
        validate_content(content)
        self._require_own_message(user_id, message_id)

        message = self.message_repo.update_message_content(message_id, content)
        record = MessageRecord.model_validate(message)
        self._publish(ChangeOp.UPDATE, record)
        logger.info(f"Edited message {message_id}")
        return record

    def delete_message(self, user_id: UUID, message_id: UUID) -> MessageRecord:
        """Remove one of the caller's messages permanently."""
        self._require_own_message(user_id, message_id)

        message = self.message_repo.delete_message(message_id)
        record = MessageRecord.model_validate(message)
        self._publish(ChangeOp.DELETE, record)
        logger.info(f"Deleted message {message_id}")
        return record

    def get_profiles(self, user_ids: Iterable[UUID]) -> List[SenderProfile]:
        """Batch profile lookup for sender labels."""
        return [
            SenderProfile.model_validate(user)
            for user in self.user_repo.get_users_by_ids(user_ids)
        ]
