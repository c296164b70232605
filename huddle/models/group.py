"""Group and group membership models."""

import uuid

from sqlalchemy import (
    Boolean,
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

from huddle.core.enums import GroupRole

from . import Base, utcnow


class Group(Base):
    """An organizational unit with an owner, members and an invitation token."""

    __tablename__ = "group"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    owner_id = Column(Uuid, ForeignKey("user.id"), nullable=False)
    invitation_token = Column(String(128), nullable=False, unique=True)
    invitation_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    memberships = relationship(
        "GroupMembership", back_populates="group", cascade="all, delete-orphan"
    )
    rooms = relationship(
        "ChatRoom", back_populates="group", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}')>"


class GroupMembership(Base):
    __tablename__ = "group_membership"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(
        Uuid, ForeignKey("group.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(GroupRole), nullable=False, default=GroupRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    group = relationship("Group", back_populates="memberships")
    user = relationship("User", back_populates="group_memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="group_membership_unique"),
        Index("ix_group_membership_user_id", "user_id"),  # For "my groups" lookup
    )

    def __repr__(self):
        return f"<GroupMembership(group_id={self.group_id}, user_id={self.user_id}, role={self.role})>"
