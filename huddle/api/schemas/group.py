"""Group and invitation API request/response schemas."""

import uuid
from typing import List

from pydantic import BaseModel, Field, field_validator

from huddle.schemas import GroupRecord, MemberRecord


# Request Models
class CreateGroupRequest(BaseModel):
    """Request model for creating a group."""

    name: str = Field(..., min_length=1, max_length=255, description="Group name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate group name."""
        if not v or not v.strip():
            raise ValueError("Group name cannot be empty or only whitespace")
        return v.strip()


class InvitationSettingsRequest(BaseModel):
    """Request model for switching invitation joins on or off."""

    enabled: bool = Field(..., description="Whether the invitation link accepts joins")


# Response Models
class GroupCreatedResponse(BaseModel):
    """Response model for successful group creation."""

    message: str = Field(..., description="Success message")
    data: GroupRecord = Field(..., description="The created group")


class MemberListResponse(BaseModel):
    """Response model for group members."""

    group_id: uuid.UUID
    members: List[MemberRecord]
    total: int = Field(..., description="Number of members")
