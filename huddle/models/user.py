"""User model."""

import uuid

from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from . import Base, utcnow


class User(Base):
    __tablename__ = "user"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    group_memberships = relationship("GroupMembership", back_populates="user")
    sent_messages = relationship("Message", back_populates="sender")

    @property
    def label(self) -> str:
        """Name shown next to the user's messages."""
        return self.display_name or self.username

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
