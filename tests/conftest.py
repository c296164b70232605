"""Main conftest.py: SQLite-backed stores, repositories and services."""

import itertools
import os

# Settings are read on first use; set them before importing huddle
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DATABASE_URL"] = "sqlite:///./huddle-unused.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["INVITE_BASE_URL"] = "https://huddle.test"
os.environ["FEED_RELAY_ENABLED"] = "false"

import pytest  # noqa: E402

from huddle.core.config import get_settings  # noqa: E402
from huddle.core.messaging.feed import LocalChangeFeed  # noqa: E402
from huddle.db.db import build_engine, build_session_factory, create_schema  # noqa: E402
from huddle.models import Base  # noqa: E402
from huddle.repositories.group_repo import GroupRepo  # noqa: E402
from huddle.repositories.message_repo import MessageRepo  # noqa: E402
from huddle.repositories.room_repo import RoomRepo  # noqa: E402
from huddle.repositories.user_repo import UserRepo  # noqa: E402
from huddle.services.group_service import GroupService  # noqa: E402
from huddle.services.invitation_service import InvitationService  # noqa: E402
from huddle.services.message_service import MessageService  # noqa: E402
from huddle.services.room_service import RoomService  # noqa: E402


@pytest.fixture
def test_engine(tmp_path):
    """File-backed SQLite database with the full schema, one per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'huddle.db'}")
    create_schema(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Create session factory for tests."""
    return build_session_factory(test_engine)


@pytest.fixture
def test_session(test_session_factory):
    """Create a clean database session for each test."""
    session = test_session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def user_repo(test_session_factory):
    """Create UserRepo instance."""
    return UserRepo(test_session_factory)


@pytest.fixture
def group_repo(test_session_factory):
    """Create GroupRepo instance."""
    return GroupRepo(test_session_factory)


@pytest.fixture
def room_repo(test_session_factory):
    """Create RoomRepo instance."""
    return RoomRepo(test_session_factory)


@pytest.fixture
def message_repo(test_session_factory):
    """Create MessageRepo instance."""
    return MessageRepo(test_session_factory)


@pytest.fixture
def feed():
    """Fresh change feed hub."""
    return LocalChangeFeed()


@pytest.fixture
def token_factory():
    """Deterministic invitation tokens: abc123, xyz789, then numbered ones."""
    counter = itertools.count(1)
    scripted = iter(["abc123", "xyz789"])
    return lambda: next(scripted, None) or f"token{next(counter)}"


@pytest.fixture
def group_service(group_repo, user_repo, settings, token_factory):
    """Create GroupService instance."""
    return GroupService(group_repo, user_repo, settings, token_factory=token_factory)


@pytest.fixture
def invitation_service(group_repo, settings, token_factory):
    """Create InvitationService instance sharing the token sequence."""
    return InvitationService(group_repo, settings, token_factory=token_factory)


@pytest.fixture
def room_service(room_repo, group_repo, user_repo, message_repo):
    """Create RoomService instance."""
    return RoomService(room_repo, group_repo, user_repo, message_repo)


@pytest.fixture
def message_service(message_repo, user_repo, room_service, feed, settings):
    """Create MessageService instance publishing to the test feed."""
    return MessageService(
        message_repo, user_repo, room_service, feed=feed, settings=settings
    )


@pytest.fixture
def sample_users(user_repo):
    """Create alice, bob, carol and dave."""
    return [
        user_repo.create_user("alice", display_name="Alice Anders"),
        user_repo.create_user("bob", display_name="Bob Brown"),
        user_repo.create_user("carol"),
        user_repo.create_user("dave", display_name="Dave Dunn"),
    ]


@pytest.fixture
def sample_group(group_service, sample_users):
    """Group owned by alice; token is abc123."""
    return group_service.create_group(sample_users[0].id, "Engineering")


@pytest.fixture
def group_with_members(sample_group, invitation_service, sample_users):
    """Engineering group with alice (owner), bob and carol (members)."""
    invitation_service.join_via_token("abc123", sample_users[1].id)
    invitation_service.join_via_token("abc123", sample_users[2].id)
    return sample_group
