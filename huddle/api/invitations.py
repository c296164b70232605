"""Invitation link endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from huddle.core.auth_utils import get_current_user_id
from huddle.dependencies import get_invitation_service
from huddle.schemas import InvitationPreview, JoinResult
from huddle.services.invitation_service import InvitationService

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.get("/{token}", response_model=InvitationPreview)
def preview_invitation(
    token: str,
    current_user_id: Annotated[UUID, Depends(get_current_user_id)],
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> InvitationPreview:
    """Show which group a link leads to before joining."""
    return invitation_service.preview_invitation(token, current_user_id)


@router.post("/{token}/join", response_model=JoinResult)
def join_group(
    token: str,
    current_user_id: Annotated[UUID, Depends(get_current_user_id)],
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> JoinResult:
    """Join the group behind an invitation link. Joining twice is a no-op."""
    return invitation_service.join_via_token(token, current_user_id)
