"""User repository."""

from typing import Iterable, List, Optional, cast
from uuid import UUID

from sqlalchemy.orm import Session

from huddle.core.errors import ValidationError
from huddle.core.logging import get_logger
from huddle.models.user import User
from huddle.repositories.base_repo import BaseRepo

logger = get_logger(__name__)

MAX_USERNAME_LENGTH = 255


class UserRepo(BaseRepo):
    """User profile repository."""

    def _create_user_implementation(
        self, session: Session, username: str, display_name: Optional[str]
    ) -> User:
        """Implementation of user creation."""
        logger.debug(f"Creating user with username: {username}")

        if not username or not username.strip():
            logger.warning("Attempted to create user with empty username")
            raise ValidationError("Username cannot be empty or whitespace-only")
        if len(username) > MAX_USERNAME_LENGTH:
            logger.warning(
                f"Attempted to create user with username too long: {len(username)} chars"
            )
            raise ValidationError(
                f"Username cannot exceed {MAX_USERNAME_LENGTH} characters"
            )

        user = User(username=username.strip(), display_name=display_name)
        session.add(user)
        session.flush()  # Generate ID without committing

        logger.info(f"Created user: {user.id} ({user.username})")
        return user

    def create_user(
        self,
        username: str,
        display_name: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> User:
        """Create a new user profile."""
        return cast(
            User,
            self._execute_with_session(
                lambda s: self._create_user_implementation(s, username, display_name),
                session=session,
                operation_name="create_user",
            ),
        )

    def get_user_by_id(
        self, user_id: UUID, session: Optional[Session] = None
    ) -> Optional[User]:
        """Get a user by id."""
        return cast(
            Optional[User],
            self._execute_with_session(
                lambda s: s.query(User).filter(User.id == user_id).one_or_none(),
                session=session,
                operation_name="get_user_by_id",
            ),
        )

    def _get_users_by_ids_implementation(
        self, session: Session, user_ids: List[UUID]
    ) -> List[User]:
        if not user_ids:
            return []
        return cast(
            List[User], session.query(User).filter(User.id.in_(user_ids)).all()
        )

    def get_users_by_ids(
        self, user_ids: Iterable[UUID], session: Optional[Session] = None
    ) -> List[User]:
        """Batch profile lookup; unknown ids are simply absent from the result."""
        unique_ids = list(dict.fromkeys(user_ids))
        return cast(
            List[User],
            self._execute_with_session(
                lambda s: self._get_users_by_ids_implementation(s, unique_ids),
                session=session,
                operation_name="get_users_by_ids",
            ),
        )
