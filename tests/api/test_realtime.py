"""Tests for the room change WebSocket and health endpoints."""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from tests.helpers.auth_helper import create_test_token


@pytest.fixture
def group_room(room_service, group_with_members, sample_users):
    return room_service.resolve_group_room(sample_users[0].id, group_with_members.id)


class TestRoomChangesWebSocket:
    """Test cases for /ws/rooms/{room_id}."""

    def test_streams_committed_messages(
        self, client: TestClient, group_room, sample_users, auth_headers_for_user
    ):
        alice, bob = sample_users[0], sample_users[1]
        url = f"/ws/rooms/{group_room.id}?token={create_test_token(bob.id)}"

        with client.websocket_connect(url) as websocket:
            confirmed = websocket.receive_json()
            assert confirmed == {
                "type": "subscription.confirmed",
                "room_id": str(group_room.id),
            }

            sent = client.post(
                f"/api/v1/rooms/{group_room.id}/messages",
                json={"content": "hello bob", "client_key": "k1"},
                headers=auth_headers_for_user(alice),
            ).json()

            frame = websocket.receive_json()

        assert frame["type"] == "change"
        assert frame["op"] == "INSERT"
        assert frame["table"] == "message"
        assert frame["row"]["id"] == sent["id"]
        assert frame["row"]["content"] == "hello bob"
        assert frame["commit_seq"] >= 1

    def test_ping(self, client: TestClient, group_room, sample_users):
        url = f"/ws/rooms/{group_room.id}?token={create_test_token(sample_users[0].id)}"

        with client.websocket_connect(url) as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "ping"})

            assert websocket.receive_json() == {"type": "pong"}

    def test_invalid_token(self, client: TestClient, group_room):
        with client.websocket_connect(f"/ws/rooms/{group_room.id}?token=bogus") as websocket:
            error = websocket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert error["type"] == "error"
        assert exc_info.value.code == 1008

    def test_non_member_rejected(self, client: TestClient, group_room, sample_users):
        dave = sample_users[3]
        url = f"/ws/rooms/{group_room.id}?token={create_test_token(dave.id)}"

        with client.websocket_connect(url) as websocket:
            error = websocket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert error == {
            "type": "error",
            "code": "NOT_AUTHORIZED",
            "message": error["message"],
        }
        assert exc_info.value.code == 1008

    def test_open_socket_holds_one_subscription(
        self, client: TestClient, group_room, sample_users, feed
    ):
        url = f"/ws/rooms/{group_room.id}?token={create_test_token(sample_users[0].id)}"

        with client.websocket_connect(url) as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "ping"})
            websocket.receive_json()

            assert feed.subscriber_count == 1


class TestHealthEndpoints:
    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "huddle-backend"}

    def test_messaging_health_without_relay(self, client: TestClient):
        response = client.get("/health/messaging")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["relay"] == "disabled"
        assert data["feed_subscribers"] == 0

    def test_database_health(self, client: TestClient):
        response = client.get("/health/database")

        assert response.json() == {"status": "healthy", "database_connected": True}
