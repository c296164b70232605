"""Message API request/response schemas."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from huddle.core.enums import MessageType
from huddle.schemas import MessageRecord


# Request Models
class SendMessageRequest(BaseModel):
    """Request model for sending a new message."""

    content: str = Field(..., max_length=4000, description="Message content")
    message_type: MessageType = Field(MessageType.TEXT, description="Message type")
    client_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated key; retries with the same key are deduplicated",
    )


class EditMessageRequest(BaseModel):
    """Request model for editing a message."""

    content: str = Field(..., max_length=4000, description="New message content")


# Response Models
class MessageHistoryResponse(BaseModel):
    """Response model for message history, newest first."""

    messages: List[MessageRecord] = Field(..., description="List of messages")
    has_more: bool = Field(..., description="Whether older messages may exist")
    next_cursor: Optional[datetime] = Field(
        None, description="Pass as `before` to fetch the next older page"
    )
    next_cursor_id: Optional[uuid.UUID] = Field(
        None, description="Pass as `before_id` together with `next_cursor`"
    )
