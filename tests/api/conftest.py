"""API tests conftest.py: the app wired to the per-test SQLite store."""

import pytest
from fastapi.testclient import TestClient

from huddle.db.db import get_db
from huddle.dependencies import get_change_feed, get_session_factory
from huddle.main import app
from tests.helpers.auth_helper import get_auth_headers


@pytest.fixture
def client(test_session_factory, feed):
    """TestClient whose repositories and change feed are the test ones."""

    def override_get_db():
        db = test_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers_for_user():
    """Factory for Authorization headers."""
    return get_auth_headers
