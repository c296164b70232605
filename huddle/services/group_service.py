"""Group service for business logic."""

from typing import Callable, List, Optional
from uuid import UUID

from huddle.core.config import Settings, get_settings
from huddle.core.enums import GroupRole
from huddle.core.errors import NotAuthorized, NotFound, ValidationError
from huddle.core.logging import get_logger
from huddle.repositories.group_repo import GroupRepo
from huddle.repositories.user_repo import UserRepo
from huddle.schemas import GroupRecord, MemberRecord
from huddle.services.access import require_group, require_membership
from huddle.services.invitation_service import generate_invitation_token

logger = get_logger(__name__)

# Business rules constants
MAX_GROUP_NAME_LENGTH = 255


class GroupService:
    """Group service for business logic."""

    def __init__(
        self,
        group_repo: GroupRepo,
        user_repo: UserRepo,
        settings: Optional[Settings] = None,
        token_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize the group service."""
        self.group_repo = group_repo
        self.user_repo = user_repo
        self.settings = settings or get_settings()
        self.token_factory = token_factory or (
            lambda: generate_invitation_token(self.settings.INVITATION_TOKEN_BYTES)
        )

    def create_group(self, owner_id: UUID, name: str) -> GroupRecord:
        """Create a group, its invitation token and the owner membership."""
        logger.info(f"Creating group '{name}' for owner {owner_id}")

        # Business rule: Name cannot be empty or too long
        if not name or not name.strip():
            raise ValidationError("Group name cannot be empty")
        if len(name.strip()) > MAX_GROUP_NAME_LENGTH:
            raise ValidationError(
                f"Group name cannot exceed {MAX_GROUP_NAME_LENGTH} characters"
            )

        if self.user_repo.get_user_by_id(owner_id) is None:
            raise NotFound(f"User {owner_id} not found")

        group = self.group_repo.create_group(
            owner_id, name.strip(), self.token_factory()
        )
        return GroupRecord.model_validate(group)

    def get_group(self, user_id: UUID, group_id: UUID) -> GroupRecord:
        group = require_group(self.group_repo, group_id)
        require_membership(self.group_repo, group_id, user_id)
        return GroupRecord.model_validate(group)

    def delete_group(self, user_id: UUID, group_id: UUID) -> None:
        """Delete a group with all memberships, rooms and messages. Owner only."""
        require_group(self.group_repo, group_id)
        membership = require_membership(self.group_repo, group_id, user_id)
        if membership.role != GroupRole.OWNER:
            raise NotAuthorized("Only the group owner can delete the group")
        self.group_repo.delete_group(group_id)

    def list_members(self, user_id: UUID, group_id: UUID) -> List[MemberRecord]:
        """List members with profiles, oldest membership first."""
        require_group(self.group_repo, group_id)
        require_membership(self.group_repo, group_id, user_id)
        members = self.group_repo.get_members(group_id)
        logger.debug(f"Group {group_id} has {len(members)} members")
        return [MemberRecord.model_validate(member) for member in members]
