"""Tests for RoomService."""

from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from huddle.core.enums import RoomType
from huddle.core.errors import InvalidTarget, NotAuthorized, NotFound, ValidationError
from huddle.models.room import ChatRoom


class TestRoomService:
    """Test cases for RoomService."""

    def test_resolve_group_room(self, room_service, group_with_members, sample_users):
        """Any member resolves the same group room, named after the group."""
        alice, bob = sample_users[0], sample_users[1]

        first = room_service.resolve_group_room(alice.id, group_with_members.id)
        second = room_service.resolve_group_room(bob.id, group_with_members.id)

        assert first.id == second.id
        assert first.type == RoomType.GROUP
        assert first.name == "Engineering"
        assert first.group_id == group_with_members.id

    def test_two_tabs_open_direct_room_at_once(
        self, room_service, group_with_members, sample_users, test_session
    ):
        """alice and bob opening their conversation concurrently share one room."""
        alice, bob = sample_users[0], sample_users[1]
        calls = [(alice.id, bob.id), (bob.id, alice.id), (alice.id, bob.id)]

        with ThreadPoolExecutor(max_workers=3) as pool:
            rooms = list(
                pool.map(
                    lambda pair: room_service.resolve_direct_room(
                        pair[0], pair[1], group_with_members.id
                    ),
                    calls,
                )
            )

        assert len({room.id for room in rooms}) == 1
        assert rooms[0].type == RoomType.DIRECT
        assert (
            test_session.query(ChatRoom)
            .filter(ChatRoom.type == RoomType.DIRECT)
            .count()
            == 1
        )

    def test_direct_room_with_non_member(
        self, room_service, group_with_members, sample_users
    ):
        """dave is not in the group and cannot be a direct room target."""
        alice, dave = sample_users[0], sample_users[3]

        with pytest.raises(InvalidTarget):
            room_service.resolve_direct_room(alice.id, dave.id, group_with_members.id)

    def test_direct_room_with_self(self, room_service, group_with_members, sample_users):
        alice = sample_users[0]

        with pytest.raises(ValidationError):
            room_service.resolve_direct_room(alice.id, alice.id, group_with_members.id)

    def test_resolve_requires_membership(
        self, room_service, group_with_members, sample_users
    ):
        """Outsiders cannot resolve rooms in the group."""
        alice, dave = sample_users[0], sample_users[3]

        with pytest.raises(NotAuthorized):
            room_service.resolve_group_room(dave.id, group_with_members.id)
        with pytest.raises(NotAuthorized):
            room_service.resolve_direct_room(dave.id, alice.id, group_with_members.id)

    def test_resolve_unknown_group(self, room_service, sample_users):
        with pytest.raises(NotFound):
            room_service.resolve_group_room(sample_users[0].id, uuid4())

    def test_authorize_room_access(self, room_service, group_with_members, sample_users):
        """Group rooms admit group members; direct rooms only their two users."""
        alice, bob, carol, dave = sample_users
        group_room = room_service.resolve_group_room(alice.id, group_with_members.id)
        direct = room_service.resolve_direct_room(alice.id, bob.id, group_with_members.id)

        assert room_service.authorize_room_access(carol.id, group_room.id).id == group_room.id
        assert room_service.authorize_room_access(bob.id, direct.id).id == direct.id

        with pytest.raises(NotAuthorized):
            room_service.authorize_room_access(dave.id, group_room.id)
        with pytest.raises(NotAuthorized):
            room_service.authorize_room_access(carol.id, direct.id)
        with pytest.raises(NotFound):
            room_service.authorize_room_access(alice.id, uuid4())

    def test_list_rooms(
        self, room_service, message_service, group_with_members, sample_users
    ):
        """The room list shows last messages and the other direct participant."""
        alice, bob, carol = sample_users[0], sample_users[1], sample_users[2]
        group_room = room_service.resolve_group_room(alice.id, group_with_members.id)
        direct = room_service.resolve_direct_room(bob.id, alice.id, group_with_members.id)
        message_service.send_message(alice.id, group_room.id, "hello everyone")
        message_service.send_message(bob.id, direct.id, "psst")

        summaries = {s.room.id: s for s in room_service.list_rooms(alice.id)}

        assert set(summaries) == {group_room.id, direct.id}
        assert summaries[group_room.id].display_name == "Engineering"
        assert summaries[group_room.id].last_message.content == "hello everyone"
        assert summaries[direct.id].other_user.id == bob.id
        assert summaries[direct.id].display_name == "Bob Brown"
        assert summaries[direct.id].last_message.content == "psst"

        carol_rooms = room_service.list_rooms(carol.id)
        assert [s.room.id for s in carol_rooms] == [group_room.id]
