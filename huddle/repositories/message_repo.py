"""Message repository."""

from datetime import datetime
from typing import List, Optional, Tuple, cast
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from huddle.core.enums import MessageType
from huddle.core.errors import NotFound, TransientIO, ValidationError
from huddle.core.logging import get_logger
from huddle.models import as_utc, utcnow
from huddle.models.message import Message
from huddle.models.room import ChatRoom
from huddle.repositories.base_repo import BaseRepo
from huddle.repositories.transaction import transaction_scope

logger = get_logger(__name__)


class MessageRepo(BaseRepo):
    """Message repository."""

    def _find_by_client_key(
        self, session: Session, sender_id: UUID, client_key: str
    ) -> Optional[Message]:
        return cast(
            Optional[Message],
            session.query(Message)
            .filter(Message.sender_id == sender_id, Message.client_key == client_key)
            .first(),
        )

    def _next_created_at(self, session: Session, room_id: UUID) -> datetime:
        """Server timestamp that never goes backwards within a room."""
        now = utcnow()
        latest = (
            session.query(func.max(Message.created_at))
            .filter(Message.room_id == room_id)
            .scalar()
        )
        if latest is not None and as_utc(latest) > now:
            return as_utc(latest)
        return now

    def _create_message_implementation(
        self,
        session: Session,
        room_id: UUID,
        sender_id: UUID,
        content: str,
        message_type: MessageType,
        client_key: Optional[str],
    ) -> Tuple[Message, bool]:
        """Implementation of message creation."""
        logger.debug(
            f"Creating message in room {room_id} from user {sender_id} with key {client_key}"
        )

        # Check idempotency first
        if client_key:
            existing = self._find_by_client_key(session, sender_id, client_key)
            if existing:
                logger.debug(
                    f"Returning existing message for client key {client_key}: {existing.id}"
                )
                return existing, False

        created_at = self._next_created_at(session, room_id)
        message = Message(
            room_id=room_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            client_key=client_key,
            created_at=created_at,
        )
        session.add(message)
        session.query(ChatRoom).filter(ChatRoom.id == room_id).update(
            {ChatRoom.updated_at: created_at}, synchronize_session=False
        )
        session.flush()

        logger.info(
            f"Created message: {message.id} in room {room_id} from user {sender_id}"
        )
        return message, True

    def create_message(
        self,
        room_id: UUID,
        sender_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        client_key: Optional[str] = None,
    ) -> Tuple[Message, bool]:
        """Create a message, returning (message, created).

        Retried sends carrying the same client key return the stored message
        with created=False, including when two retries race each other.
        """
        try:
            with transaction_scope(self.session_factory) as session:
                return self._create_message_implementation(
                    session, room_id, sender_id, content, message_type, client_key
                )
        except IntegrityError:
            if not client_key:
                raise
            logger.info(f"Concurrent send with client key {client_key}, reading winner")
            winner = self.get_by_client_key(sender_id, client_key)
            if winner is None:
                raise
            return winner, False
        except (OperationalError, InterfaceError) as e:
            self._log_error("create_message", e)
            raise TransientIO("Store unavailable while sending message") from e

    def get_by_client_key(
        self, sender_id: UUID, client_key: str, session: Optional[Session] = None
    ) -> Optional[Message]:
        """Get a message by its sender-scoped client key."""
        return cast(
            Optional[Message],
            self._execute_with_session(
                lambda s: self._find_by_client_key(s, sender_id, client_key),
                session=session,
                operation_name="get_by_client_key",
            ),
        )

    def get_message_by_id(
        self, message_id: UUID, session: Optional[Session] = None
    ) -> Optional[Message]:
        """Get a message by ID."""
        return cast(
            Optional[Message],
            self._execute_with_session(
                lambda s: s.query(Message).filter(Message.id == message_id).one_or_none(),
                session=session,
                operation_name="get_message_by_id",
            ),
        )

    def _get_recent_messages_implementation(
        self,
        session: Session,
        room_id: UUID,
        limit: int,
        before: Optional[datetime],
        before_id: Optional[UUID],
    ) -> List[Message]:
        """Implementation of recent messages retrieval."""
        if limit < 0:
            raise ValidationError("Limit must be non-negative")
        if limit == 0:
            return []
        if before_id is not None and before is None:
            raise ValidationError("before_id requires before")

        query = session.query(Message).filter(Message.room_id == room_id)
        if before is not None and before_id is not None:
            # Keyset on (created_at, id)
            query = query.filter(
                or_(
                    Message.created_at < before,
                    and_(Message.created_at == before, Message.id < before_id),
                )
            )
        elif before is not None:
            query = query.filter(Message.created_at < before)

        return cast(
            List[Message],
            query.order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all(),
        )

    def get_recent_messages(
        self,
        room_id: UUID,
        limit: int = 50,
        before: Optional[datetime] = None,
        before_id: Optional[UUID] = None,
        session: Optional[Session] = None,
    ) -> List[Message]:
        """Get the newest messages of a room, newest first.

        ``before`` alone pages strictly by timestamp. With ``before_id`` the
        cursor is the (created_at, id) of the last row already seen.
        """
        return cast(
            List[Message],
            self._execute_with_session(
                lambda s: self._get_recent_messages_implementation(
                    s, room_id, limit, before, before_id
                ),
                session=session,
                operation_name="get_recent_messages",
            ),
        )

    def get_last_message(
        self, room_id: UUID, session: Optional[Session] = None
    ) -> Optional[Message]:
        """Get the newest message of a room."""
        messages = self.get_recent_messages(room_id, limit=1, session=session)
        return messages[0] if messages else None

    def _update_content_implementation(
        self, session: Session, message_id: UUID, content: str
    ) -> Message:
        message = session.query(Message).filter(Message.id == message_id).one_or_none()
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        # created_at and sender_id are never touched by an edit
        message.content = content
        message.edited_at = utcnow()
        session.flush()
        return message

    def update_message_content(
        self, message_id: UUID, content: str, session: Optional[Session] = None
    ) -> Message:
        """Replace a message's content and stamp edited_at."""
        return cast(
            Message,
            self._execute_with_session(
                lambda s: self._update_content_implementation(s, message_id, content),
                session=session,
                operation_name="update_message_content",
            ),
        )

    def _delete_message_implementation(
        self, session: Session, message_id: UUID
    ) -> Message:
        message = session.query(Message).filter(Message.id == message_id).one_or_none()
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        session.delete(message)
        session.flush()
        return message

    def delete_message(
        self, message_id: UUID, session: Optional[Session] = None
    ) -> Message:
        """Hard-delete a message, returning the removed row."""
        return cast(
            Message,
            self._execute_with_session(
                lambda s: self._delete_message_implementation(s, message_id),
                session=session,
                operation_name="delete_message",
            ),
        )
