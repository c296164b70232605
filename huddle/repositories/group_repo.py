"""Group repository."""

import uuid
from enum import Enum
from typing import List, Optional, cast
from uuid import UUID

from sqlalchemy import DateTime, Uuid, insert, literal, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, joinedload

from huddle.core.enums import GroupRole
from huddle.core.errors import NotFound, TransientIO
from huddle.core.logging import get_logger
from huddle.models import utcnow
from huddle.models.group import Group, GroupMembership
from huddle.repositories.base_repo import BaseRepo

logger = get_logger(__name__)


class TokenJoinResult(str, Enum):
    """Outcome of the privileged token-gated membership insert."""

    INSERTED = "inserted"
    REJECTED = "rejected"  # token no longer current or invitations disabled
    ALREADY_MEMBER = "already_member"


class GroupRepo(BaseRepo):
    """Group repository."""

    def _create_group_implementation(
        self, session: Session, owner_id: UUID, name: str, token: str
    ) -> Group:
        """Implementation of group creation."""
        group = Group(name=name, owner_id=owner_id, invitation_token=token)
        session.add(group)
        session.flush()  # Generate ID

        # Owner membership is created exactly once, here
        owner_membership = GroupMembership(
            group_id=group.id, user_id=owner_id, role=GroupRole.OWNER
        )
        session.add(owner_membership)
        session.flush()

        logger.info(f"Created group: {group.id} owned by {owner_id}")
        return group

    def create_group(
        self,
        owner_id: UUID,
        name: str,
        token: str,
        session: Optional[Session] = None,
    ) -> Group:
        """Create a group together with its owner membership."""
        return cast(
            Group,
            self._execute_with_session(
                lambda s: self._create_group_implementation(s, owner_id, name, token),
                session=session,
                operation_name="create_group",
            ),
        )

    def get_group_by_id(
        self, group_id: UUID, session: Optional[Session] = None
    ) -> Optional[Group]:
        """Get a group by ID."""
        return cast(
            Optional[Group],
            self._execute_with_session(
                lambda s: s.query(Group).filter(Group.id == group_id).one_or_none(),
                session=session,
                operation_name="get_group_by_id",
            ),
        )

    def get_group_by_token(
        self, token: str, session: Optional[Session] = None
    ) -> Optional[Group]:
        """Get the group currently carrying an invitation token."""
        return cast(
            Optional[Group],
            self._execute_with_session(
                lambda s: s.query(Group)
                .filter(Group.invitation_token == token)
                .one_or_none(),
                session=session,
                operation_name="get_group_by_token",
            ),
        )

    def get_membership(
        self, group_id: UUID, user_id: UUID, session: Optional[Session] = None
    ) -> Optional[GroupMembership]:
        """Get a user's membership in a group, if any."""
        return cast(
            Optional[GroupMembership],
            self._execute_with_session(
                lambda s: s.query(GroupMembership)
                .filter(
                    GroupMembership.group_id == group_id,
                    GroupMembership.user_id == user_id,
                )
                .one_or_none(),
                session=session,
                operation_name="get_membership",
            ),
        )

    def _get_members_implementation(
        self, session: Session, group_id: UUID
    ) -> List[GroupMembership]:
        return cast(
            List[GroupMembership],
            (
                session.query(GroupMembership)
                .options(joinedload(GroupMembership.user))
                .filter(GroupMembership.group_id == group_id)
                .order_by(GroupMembership.joined_at.asc())
                .all()
            ),
        )

    def get_members(
        self, group_id: UUID, session: Optional[Session] = None
    ) -> List[GroupMembership]:
        """Get all members of a group with their user profiles loaded."""
        return cast(
            List[GroupMembership],
            self._execute_with_session(
                lambda s: self._get_members_implementation(s, group_id),
                session=session,
                operation_name="get_group_members",
            ),
        )

    def get_user_memberships(
        self, user_id: UUID, session: Optional[Session] = None
    ) -> List[GroupMembership]:
        """Get every group membership a user holds."""
        return cast(
            List[GroupMembership],
            self._execute_with_session(
                lambda s: s.query(GroupMembership)
                .options(joinedload(GroupMembership.group))
                .filter(GroupMembership.user_id == user_id)
                .all(),
                session=session,
                operation_name="get_user_memberships",
            ),
        )

    def _add_member_with_token_statement(
        self, group_id: UUID, user_id: UUID, token: str
    ):
        """INSERT ... SELECT that only produces a row while the token is current."""
        role_type = GroupMembership.__table__.c.role.type
        source = select(
            literal(uuid.uuid4(), Uuid()),
            Group.id,
            literal(user_id, Uuid()),
            literal(GroupRole.MEMBER, role_type),
            literal(utcnow(), DateTime(timezone=True)),
        ).where(
            Group.id == group_id,
            Group.invitation_token == token,
            Group.invitation_enabled.is_(True),
        )
        return insert(GroupMembership).from_select(
            ["id", "group_id", "user_id", "role", "joined_at"], source
        )

    def add_member_with_token(
        self, group_id: UUID, user_id: UUID, token: str
    ) -> TokenJoinResult:
        """Privileged join procedure.

        Re-validates the token inside the insert itself, so a regeneration or a
        disable that commits after the caller's lookup makes this insert produce
        no row. A unique conflict on (group, user) means a concurrent join by
        the same user already won and is reported as ALREADY_MEMBER.
        """
        session = self.session_factory()
        try:
            result = session.execute(
                self._add_member_with_token_statement(group_id, user_id, token)
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info(
                f"Concurrent join detected for user {user_id} in group {group_id}"
            )
            return TokenJoinResult.ALREADY_MEMBER
        except (OperationalError, InterfaceError) as e:
            session.rollback()
            self._log_error("add_member_with_token", e)
            raise TransientIO("Store unavailable while joining group") from e
        finally:
            session.close()

        if result.rowcount == 1:
            logger.info(f"User {user_id} joined group {group_id} via invitation")
            return TokenJoinResult.INSERTED
        return TokenJoinResult.REJECTED

    def _update_group_implementation(
        self, session: Session, group_id: UUID, **values
    ) -> Group:
        group = session.query(Group).filter(Group.id == group_id).one_or_none()
        if group is None:
            raise NotFound(f"Group {group_id} not found")
        for field, value in values.items():
            setattr(group, field, value)
        session.flush()
        return group

    def regenerate_token(
        self, group_id: UUID, new_token: str, session: Optional[Session] = None
    ) -> Group:
        """Atomically replace the group's invitation token."""
        group = cast(
            Group,
            self._execute_with_session(
                lambda s: self._update_group_implementation(
                    s, group_id, invitation_token=new_token
                ),
                session=session,
                operation_name="regenerate_token",
            ),
        )
        logger.info(f"Regenerated invitation token for group {group_id}")
        return group

    def set_invitation_enabled(
        self, group_id: UUID, enabled: bool, session: Optional[Session] = None
    ) -> Group:
        """Enable or disable joins through the group's token."""
        return cast(
            Group,
            self._execute_with_session(
                lambda s: self._update_group_implementation(
                    s, group_id, invitation_enabled=enabled
                ),
                session=session,
                operation_name="set_invitation_enabled",
            ),
        )

    def _delete_group_implementation(self, session: Session, group_id: UUID) -> None:
        group = session.query(Group).filter(Group.id == group_id).one_or_none()
        if group is None:
            raise NotFound(f"Group {group_id} not found")
        # ORM cascade removes memberships, rooms, room memberships and messages
        session.delete(group)
        session.flush()

    def delete_group(self, group_id: UUID, session: Optional[Session] = None) -> None:
        """Delete a group and everything scoped to it."""
        self._execute_with_session(
            lambda s: self._delete_group_implementation(s, group_id),
            session=session,
            operation_name="delete_group",
        )
        logger.info(f"Deleted group {group_id}")
