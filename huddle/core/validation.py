"""Input rules enforced identically by the server and the sync client."""

from typing import Optional

from huddle.core.errors import ValidationError

MAX_MESSAGE_LENGTH = 4000


def validate_content(content: Optional[str]) -> str:
    """Validate message content."""
    if content is None or not content.strip():
        raise ValidationError("Message content cannot be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message content cannot exceed {MAX_MESSAGE_LENGTH} characters"
        )
    return content
