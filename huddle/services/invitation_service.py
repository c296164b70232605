"""Invitation token lifecycle.

A group carries exactly one invitation token at a time. Joining re-validates
the token inside the membership insert, so a regeneration or a disable that
lands between the caller's lookup and the insert still wins.
"""

import re
import secrets
from typing import Callable, Optional
from uuid import UUID

from huddle.core.config import Settings, get_settings
from huddle.core.errors import InvalidToken, InvitationsDisabled, NotFound
from huddle.core.logging import get_logger
from huddle.core.observability.metrics import log_membership_event
from huddle.models.group import Group
from huddle.repositories.group_repo import GroupRepo, TokenJoinResult
from huddle.schemas import InvitationInfo, InvitationPreview, JoinResult
from huddle.services.access import require_manager

logger = get_logger(__name__)

MAX_TOKEN_LENGTH = 128
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_invitation_token(nbytes: int = 24) -> str:
    """Opaque, unguessable, URL-safe token."""
    return secrets.token_urlsafe(nbytes)


def validate_token_format(token: Optional[str]) -> str:
    """Reject tokens that could never have been issued."""
    if not token or len(token) > MAX_TOKEN_LENGTH or not TOKEN_PATTERN.match(token):
        raise InvalidToken()
    return token


class InvitationService:
    """Invitation service for business logic."""

    def __init__(
        self,
        group_repo: GroupRepo,
        settings: Optional[Settings] = None,
        token_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize the invitation service."""
        self.group_repo = group_repo
        self.settings = settings or get_settings()
        self.token_factory = token_factory or (
            lambda: generate_invitation_token(self.settings.INVITATION_TOKEN_BYTES)
        )

    def invitation_link(self, token: str) -> str:
        """Shareable URL with the token as its last path segment."""
        return f"{self.settings.INVITE_BASE_URL.rstrip('/')}/invite/{token}"

    def _info(self, group: Group) -> InvitationInfo:
        return InvitationInfo(
            group_id=group.id,
            token=group.invitation_token,
            link=self.invitation_link(group.invitation_token),
            enabled=group.invitation_enabled,
        )

    def get_invitation(self, user_id: UUID, group_id: UUID) -> InvitationInfo:
        """Current token and state, for owners and admins."""
        group = require_manager(self.group_repo, group_id, user_id)
        return self._info(group)

    def preview_invitation(
        self, token: str, user_id: Optional[UUID] = None
    ) -> InvitationPreview:
        """What the invite landing page shows before the user accepts."""
        validate_token_format(token)
        group = self.group_repo.get_group_by_token(token)
        if group is None:
            raise InvalidToken()

        already_member = False
        if user_id is not None:
            already_member = (
                self.group_repo.get_membership(group.id, user_id) is not None
            )
        return InvitationPreview(
            group_id=group.id,
            group_name=group.name,
            invitation_enabled=group.invitation_enabled,
            already_member=already_member,
        )

    def join_via_token(self, token: str, user_id: UUID) -> JoinResult:
        """Redeem an invitation token for the caller.

        Being a member already is a successful no-op and never changes the
        existing role.
        """
        logger.info(f"User {user_id} joining via invitation token")
        validate_token_format(token)

        group = self.group_repo.get_group_by_token(token)
        if group is None:
            raise InvalidToken()
        if not group.invitation_enabled:
            raise InvitationsDisabled()

        existing = self.group_repo.get_membership(group.id, user_id)
        if existing is not None:
            logger.info(f"User {user_id} is already a member of group {group.id}")
            log_membership_event("already_member", str(group.id))
            return JoinResult(
                group_id=group.id,
                group_name=group.name,
                role=existing.role,
                already_member=True,
            )

        outcome = self.group_repo.add_member_with_token(group.id, user_id, token)

        if outcome == TokenJoinResult.REJECTED:
            # The token was rotated or invitations switched off after our lookup
            current = self.group_repo.get_group_by_id(group.id)
            if current is None or current.invitation_token != token:
                logger.info(f"Join rejected for group {group.id}: token changed")
                log_membership_event("rejected", str(group.id), reason="token_changed")
                raise InvalidToken()
            logger.info(f"Join rejected for group {group.id}: invitations disabled")
            log_membership_event("rejected", str(group.id), reason="disabled")
            raise InvitationsDisabled()

        membership = self.group_repo.get_membership(group.id, user_id)
        if membership is None:
            # Conflict was not a duplicate membership (e.g. unknown user)
            raise NotFound(f"User {user_id} not found")
        log_membership_event(
            "joined" if outcome == TokenJoinResult.INSERTED else "already_member",
            str(group.id),
        )
        return JoinResult(
            group_id=group.id,
            group_name=group.name,
            role=membership.role,
            already_member=outcome == TokenJoinResult.ALREADY_MEMBER,
        )

    def set_invitation_enabled(
        self, user_id: UUID, group_id: UUID, enabled: bool
    ) -> InvitationInfo:
        """Switch token joins on or off without touching the token."""
        require_manager(self.group_repo, group_id, user_id)
        group = self.group_repo.set_invitation_enabled(group_id, enabled)
        logger.info(
            f"Invitations {'enabled' if enabled else 'disabled'} for group {group_id}"
        )
        return self._info(group)

    def regenerate_token(self, user_id: UUID, group_id: UUID) -> InvitationInfo:
        """Replace the token; the previous one stops working immediately."""
        require_manager(self.group_repo, group_id, user_id)
        group = self.group_repo.regenerate_token(group_id, self.token_factory())
        return self._info(group)
