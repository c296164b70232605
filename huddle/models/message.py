"""Message model."""

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from huddle.core.enums import MessageType

from . import Base, utcnow


class Message(Base):
    __tablename__ = "message"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_id = Column(
        Uuid, ForeignKey("chat_room.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(Uuid, ForeignKey("user.id"), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(Enum(MessageType), nullable=False, default=MessageType.TEXT)
    client_key = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    edited_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    room = relationship("ChatRoom", back_populates="messages")
    sender = relationship("User", back_populates="sent_messages")

    __table_args__ = (
        UniqueConstraint("sender_id", "client_key", name="message_client_key_unique"),
        Index("ix_message_room_created", "room_id", "created_at"),  # Timeline paging
    )

    def __repr__(self):
        return f"<Message(id={self.id}, room_id={self.room_id}, sender_id={self.sender_id})>"
