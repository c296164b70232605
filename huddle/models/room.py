"""Chat room models."""

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from huddle.core.enums import RoomType

from . import Base, utcnow


class ChatRoom(Base):
    """A chat channel scoped to a whole group or to two users within a group."""

    __tablename__ = "chat_room"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(Enum(RoomType), nullable=False)
    room_key = Column(String, nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    group_id = Column(
        Uuid, ForeignKey("group.id", ondelete="CASCADE"), nullable=False
    )
    created_by = Column(Uuid, ForeignKey("user.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    group = relationship("Group", back_populates="rooms")
    memberships = relationship(
        "RoomMembership", back_populates="room", cascade="all, delete-orphan"
    )
    messages = relationship(
        "Message", back_populates="room", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_chat_room_group_id", "group_id"),)

    @classmethod
    def group_room_key(cls, group_id: uuid.UUID) -> str:
        return f"group:{group_id}"

    @classmethod
    def direct_room_key(
        cls, user1_id: uuid.UUID, user2_id: uuid.UUID, group_id: uuid.UUID
    ) -> str:
        """Create the direct room key ensuring consistent ordering of the pair."""
        min_id, max_id = sorted([str(user1_id), str(user2_id)])
        return f"direct:{group_id}:{min_id}:{max_id}"

    @classmethod
    def find_by_key(cls, session, room_key: str):
        return session.query(cls).filter_by(room_key=room_key).first()

    def __repr__(self):
        return f"<ChatRoom(id={self.id}, type={self.type}, room_key='{self.room_key}')>"


class RoomMembership(Base):
    __tablename__ = "room_membership"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_id = Column(
        Uuid, ForeignKey("chat_room.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    room = relationship("ChatRoom", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("room_id", "user_id", name="room_membership_unique"),
        Index("ix_room_membership_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<RoomMembership(room_id={self.room_id}, user_id={self.user_id})>"
