"""Group authorization checks shared by the services."""

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from huddle.core.enums import GroupRole
from huddle.core.errors import NotAuthorized, NotFound
from huddle.models.group import Group, GroupMembership
from huddle.repositories.group_repo import GroupRepo

MANAGER_ROLES = (GroupRole.OWNER, GroupRole.ADMIN)


def require_group(
    group_repo: GroupRepo, group_id: UUID, session: Optional[Session] = None
) -> Group:
    """Load a group or raise NotFound."""
    group = group_repo.get_group_by_id(group_id, session=session)
    if group is None:
        raise NotFound(f"Group {group_id} not found", group_id=str(group_id))
    return group


def require_membership(
    group_repo: GroupRepo,
    group_id: UUID,
    user_id: UUID,
    session: Optional[Session] = None,
) -> GroupMembership:
    """Return the caller's membership or raise NotAuthorized."""
    membership = group_repo.get_membership(group_id, user_id, session=session)
    if membership is None:
        raise NotAuthorized("You are not a member of this group")
    return membership


def require_manager(
    group_repo: GroupRepo,
    group_id: UUID,
    user_id: UUID,
    session: Optional[Session] = None,
) -> Group:
    """Owners and admins only."""
    group = require_group(group_repo, group_id, session=session)
    membership = require_membership(group_repo, group_id, user_id, session=session)
    if membership.role not in MANAGER_ROLES:
        raise NotAuthorized("Only group owners and admins can manage invitations")
    return group
