"""Group, invitation settings and room resolution endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from huddle.api.schemas import (
    CreateGroupRequest,
    DirectRoomRequest,
    GroupCreatedResponse,
    InvitationSettingsRequest,
    MemberListResponse,
)
from huddle.core.auth_utils import get_current_user_id
from huddle.dependencies import (
    get_group_service,
    get_invitation_service,
    get_room_service,
)
from huddle.schemas import InvitationInfo, RoomRecord
from huddle.services.group_service import GroupService
from huddle.services.invitation_service import InvitationService
from huddle.services.room_service import RoomService

router = APIRouter(prefix="/groups", tags=["groups"])

CurrentUser = Annotated[UUID, Depends(get_current_user_id)]


@router.post(
    "", response_model=GroupCreatedResponse, status_code=status.HTTP_201_CREATED
)
def create_group(
    request: CreateGroupRequest,
    current_user_id: CurrentUser,
    group_service: Annotated[GroupService, Depends(get_group_service)],
) -> GroupCreatedResponse:
    """Create a group owned by the caller."""
    group = group_service.create_group(current_user_id, request.name)
    return GroupCreatedResponse(message="Group created successfully", data=group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: UUID,
    current_user_id: CurrentUser,
    group_service: Annotated[GroupService, Depends(get_group_service)],
) -> None:
    """Delete a group and everything in it. Owner only."""
    group_service.delete_group(current_user_id, group_id)


@router.get("/{group_id}/members", response_model=MemberListResponse)
def list_members(
    group_id: UUID,
    current_user_id: CurrentUser,
    group_service: Annotated[GroupService, Depends(get_group_service)],
) -> MemberListResponse:
    """List the members of a group."""
    members = group_service.list_members(current_user_id, group_id)
    return MemberListResponse(group_id=group_id, members=members, total=len(members))


@router.get("/{group_id}/invitation", response_model=InvitationInfo)
def get_invitation(
    group_id: UUID,
    current_user_id: CurrentUser,
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> InvitationInfo:
    """Current invitation link and state. Owners and admins only."""
    return invitation_service.get_invitation(current_user_id, group_id)


@router.put("/{group_id}/invitation", response_model=InvitationInfo)
def update_invitation(
    group_id: UUID,
    request: InvitationSettingsRequest,
    current_user_id: CurrentUser,
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> InvitationInfo:
    """Enable or disable joining through the invitation link."""
    return invitation_service.set_invitation_enabled(
        current_user_id, group_id, request.enabled
    )


@router.post("/{group_id}/invitation/regenerate", response_model=InvitationInfo)
def regenerate_invitation(
    group_id: UUID,
    current_user_id: CurrentUser,
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> InvitationInfo:
    """Issue a new token; links with the old one stop working."""
    return invitation_service.regenerate_token(current_user_id, group_id)


@router.post("/{group_id}/room", response_model=RoomRecord)
def resolve_group_room(
    group_id: UUID,
    current_user_id: CurrentUser,
    room_service: Annotated[RoomService, Depends(get_room_service)],
) -> RoomRecord:
    """Get the group's room, creating it on first access."""
    return room_service.resolve_group_room(current_user_id, group_id)


@router.post("/{group_id}/direct-rooms", response_model=RoomRecord)
def resolve_direct_room(
    group_id: UUID,
    request: DirectRoomRequest,
    current_user_id: CurrentUser,
    room_service: Annotated[RoomService, Depends(get_room_service)],
) -> RoomRecord:
    """Get the direct room with another group member, creating it once."""
    return room_service.resolve_direct_room(current_user_id, request.peer_id, group_id)
