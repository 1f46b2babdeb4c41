"""
Tests for the MCP tool functions.

The tools are exercised directly against a fresh repository per test.
"""

import pytest

from chat_store import server
from chat_store.models import ChatClient, ChatUser, UserStatus
from chat_store.repository import InMemoryRepository


@pytest.fixture(autouse=True)
def fresh_repository(monkeypatch):
    """Give every test its own empty store."""
    repository = InMemoryRepository()
    monkeypatch.setattr(server, "repository", repository)
    return repository


async def _connected(name):
    await server.register_user(name)
    result = await server.connect(name)
    return result["client_id"]


class TestSessions:
    """Test registration and connection tools."""

    @pytest.mark.asyncio
    async def test_register_user(self, fresh_repository):
        """Registering stores a new offline user."""
        result = await server.register_user("Alice")

        assert result["success"] is True
        user = fresh_repository.get_user_by_id(result["user_id"])
        assert user.name == "Alice"
        assert user.is_online is False

    @pytest.mark.asyncio
    async def test_register_taken_name(self):
        """Names are unique regardless of case."""
        await server.register_user("Alice")

        result = await server.register_user("ALICE")

        assert result["success"] is False
        assert "already taken" in result["error"]

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, fresh_repository):
        """Users are online while at least one client is connected."""
        await server.register_user("Alice")
        first = (await server.connect("Alice"))["client_id"]
        second = (await server.connect("alice", user_agent="cli"))["client_id"]
        alice = fresh_repository.get_user_by_name("Alice")

        assert alice.status is UserStatus.ACTIVE
        assert len(alice.connected_clients) == 2

        await server.disconnect(first)
        assert alice.is_online is True

        result = await server.disconnect(second)
        assert result["success"] is True
        assert alice.status is UserStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_connect_unknown_user(self):
        """Connecting needs a registered user."""
        result = await server.connect("Nobody")

        assert result == {"success": False, "error": "User not found"}

    @pytest.mark.asyncio
    async def test_disconnect_unknown_client(self):
        """Unknown clients are reported."""
        result = await server.disconnect("missing")

        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_disconnect_reports_missing_owner(self, fresh_repository, monkeypatch):
        """A client whose owner vanished is reported, not raised."""
        orphan = ChatClient(user=ChatUser(name="Ghost"))
        monkeypatch.setattr(
            fresh_repository, "get_client_by_id", lambda client_id, include_user=False: orphan
        )

        result = await server.disconnect(orphan.id)

        assert result["success"] is False
        assert "user not registered" in result["error"]


class TestRooms:
    """Test room tools."""

    @pytest.mark.asyncio
    async def test_create_and_join_room(self, fresh_repository):
        """Creators own their room and others can join it."""
        alice = await _connected("Alice")
        bob = await _connected("Bob")

        created = await server.create_room("Lobby", alice)
        joined = await server.join_room("lobby", bob)

        assert created["success"] is True
        assert joined["success"] is True
        assert joined["online"] == ["Alice", "Bob"]
        room = fresh_repository.get_room_by_name("Lobby")
        assert room.creator is fresh_repository.get_user_by_name("Alice")

    @pytest.mark.asyncio
    async def test_create_existing_room(self):
        """Room names are unique."""
        alice = await _connected("Alice")
        await server.create_room("Lobby", alice)

        result = await server.create_room("LOBBY", alice)

        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_private_room_is_hidden(self):
        """Users outside a private room can neither see nor join it."""
        alice = await _connected("Alice")
        bob = await _connected("Bob")
        await server.create_room("Secret", alice, private=True)
        await server.create_room("Lobby", alice)

        result = await server.join_room("Secret", bob)
        rooms = await server.list_rooms(bob)
        own_rooms = await server.list_rooms(alice)

        assert result == {"success": False, "error": "Room not found"}
        assert [r["name"] for r in rooms["rooms"]] == ["Lobby"]
        assert [r["name"] for r in own_rooms["rooms"]] == ["Secret", "Lobby"]
        assert all(r["joined"] for r in own_rooms["rooms"])

    @pytest.mark.asyncio
    async def test_leave_room(self):
        """Leaving removes membership; leaving twice is refused."""
        alice = await _connected("Alice")
        await server.create_room("Lobby", alice)

        assert (await server.leave_room("Lobby", alice))["success"] is True

        result = await server.leave_room("Lobby", alice)
        assert result == {"success": False, "error": "You are not in this room"}

    @pytest.mark.asyncio
    async def test_room_status(self):
        """Status reports members, online members and message count."""
        alice = await _connected("Alice")
        bob = await _connected("Bob")
        await server.create_room("Lobby", alice)
        await server.join_room("Lobby", bob)
        await server.send_message("Lobby", "hi", alice)
        await server.disconnect(bob)

        status = await server.get_room_status("Lobby")

        assert status["exists"] is True
        assert status["participants"] == ["Alice", "Bob"]
        assert status["online"] == ["Alice"]
        assert status["message_count"] == 1
        assert status["last_activity"] is not None

    @pytest.mark.asyncio
    async def test_unknown_room_status(self):
        """Unknown rooms are reported as missing."""
        status = await server.get_room_status("Nowhere")

        assert status["exists"] is False


class TestMessaging:
    """Test message tools."""

    @pytest.mark.asyncio
    async def test_send_and_read_history(self):
        """Messages come back in the order they were sent."""
        alice = await _connected("Alice")
        await server.create_room("Lobby", alice)

        first = await server.send_message("Lobby", "one", alice)
        await server.send_message("Lobby", "two", alice)
        history = await server.get_history("Lobby")

        assert first["success"] is True
        assert [m["content"] for m in history["messages"]] == ["one", "two"]
        assert history["messages"][0]["message_id"] == first["message_id"]
        assert history["total_count"] == 2

    @pytest.mark.asyncio
    async def test_send_requires_membership(self):
        """Only members may post."""
        alice = await _connected("Alice")
        bob = await _connected("Bob")
        await server.create_room("Lobby", alice)

        result = await server.send_message("Lobby", "hello", bob)

        assert result == {"success": False, "error": "You are not in this room"}

    @pytest.mark.asyncio
    async def test_send_with_invalid_client(self):
        """Unknown clients cannot post."""
        result = await server.send_message("Lobby", "hello", "missing")

        assert result["success"] is False
        assert "Invalid client_id" in result["error"]

    @pytest.mark.asyncio
    async def test_mentions_create_notifications(self):
        """Mentioning a user leaves them a notification."""
        alice = await _connected("Alice")
        bob = await _connected("Bob")
        await server.create_room("Lobby", alice)

        await server.send_message("Lobby", "hey @bob and @Alice and @nobody", alice)
        bob_notes = await server.get_notifications(bob)
        alice_notes = await server.get_notifications(alice)

        assert len(bob_notes["notifications"]) == 1
        note = bob_notes["notifications"][0]
        assert note["room"] == "Lobby"
        assert note["message"]["sender"] == "Alice"
        assert alice_notes["notifications"] == []

    @pytest.mark.asyncio
    async def test_previous_messages_and_search(self):
        """Earlier messages and online users can be queried."""
        alice = await _connected("Alice")
        await server.create_room("Lobby", alice)
        await server.create_room("Kitchen", alice)
        first = await server.send_message("Lobby", "one", alice)
        await server.send_message("Kitchen", "two", alice)
        await server.register_user("Alina")

        previous = await server.get_previous_messages(first["message_id"])
        found = await server.search_users("ALI")

        assert previous["messages"] == []
        assert found == {"users": ["Alice"]}
