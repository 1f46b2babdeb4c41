"""MCP tool server driving the chat store."""

from typing import Dict, Any, Optional
import logging
import os
import re
from datetime import datetime

from fastmcp import FastMCP

from chat_store.exceptions import ChatStoreError
from chat_store.models import (
    ChatClient,
    ChatMessage,
    ChatRoom,
    ChatUser,
    Notification,
    UserStatus,
)
from chat_store.repository import InMemoryRepository

# Set up logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"@(\w+)")

# Initialize FastMCP server
mcp: Any = FastMCP(name="chat-store", version="0.1.0")

# Volatile store shared by every tool
repository = InMemoryRepository()


def _user_for_client(client_id: str) -> Optional[ChatUser]:
    user = repository.get_user_by_client_id(client_id)
    if not user:
        logger.error(f"User not found for client_id: {client_id}")
    return user


def _message_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "message_id": message.id,
        "room": message.room.name if message.room else None,
        "sender": message.user.name if message.user else "System",
        "content": message.content,
        "timestamp": message.when.isoformat(),
    }


async def register_user(display_name: str) -> Dict[str, Any]:
    """Register a new user under a display name.

    Names are unique regardless of case.

    Args:
        display_name: The name other users will see

    Returns:
        Success status with user_id, or error information
    """
    if repository.get_user_by_name(display_name):
        return {"success": False, "error": f"Name {display_name} is already taken"}

    user = ChatUser(name=display_name)
    repository.add_user(user)
    repository.commit_changes()

    logger.info(f"Registered user {user.name}")
    return {"success": True, "user_id": user.id}


async def connect(user_name: str, user_agent: str = "") -> Dict[str, Any]:
    """Open a session for a registered user.

    Args:
        user_name: The display name used at registration
        user_agent: Optional description of the connecting client

    Returns:
        Success status with client_id, or error information
    """
    user = repository.get_user_by_name(user_name)
    if not user:
        return {"success": False, "error": "User not found"}

    client = ChatClient(user=user, user_agent=user_agent)
    repository.add_client(client)
    user.status = UserStatus.ACTIVE
    user.last_activity = datetime.now()
    repository.commit_changes()

    logger.info(f"User {user.name} connected with client {client.id}")
    return {"success": True, "client_id": client.id}


async def disconnect(client_id: str) -> Dict[str, Any]:
    """Close a session.

    The user goes offline once their last client disconnects.

    Args:
        client_id: Your client identifier (from connect)

    Returns:
        Success status
    """
    client = repository.get_client_by_id(client_id, include_user=True)
    if not client:
        return {"success": False, "error": "Client not found"}

    try:
        repository.remove_client(client)
    except ChatStoreError as e:
        logger.error(f"Error disconnecting client {client_id}: {e}")
        return {"success": False, "error": str(e)}

    user = client.user
    if user and not user.connected_clients:
        user.status = UserStatus.OFFLINE
    repository.commit_changes()

    logger.info(f"Client {client_id} disconnected")
    return {"success": True}


async def create_room(
    room_name: str, client_id: str, private: bool = False
) -> Dict[str, Any]:
    """Create a room and join it as its owner.

    Args:
        room_name: Name of the new room
        client_id: Your client identifier (from connect)
        private: Whether only allowed users may see and join the room

    Returns:
        Success status, or error information
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": f"User not found. Invalid client_id: {client_id}"}

    if repository.get_room_by_name(room_name):
        return {"success": False, "error": f"Room {room_name} already exists"}

    room = ChatRoom(name=room_name, private=private, creator=user)
    room.owners.add(user)
    if private:
        room.allowed_users.add(user)
    repository.add_room(room)
    repository.add_user_room(user, room)
    repository.commit_changes()

    logger.info(f"User {user.name} created room {room_name}")
    return {"success": True, "room": room.name, "private": room.private}


async def join_room(room_name: str, client_id: str) -> Dict[str, Any]:
    """Join an existing room.

    Args:
        room_name: Name of the room to join
        client_id: Your client identifier (from connect)

    Returns:
        Success status with the online members, or error information
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": f"User not found. Invalid client_id: {client_id}"}

    room = repository.get_room_and_users_by_name(room_name)
    if not room or not room.is_allowed(user):
        return {"success": False, "error": "Room not found"}

    if room.closed:
        return {"success": False, "error": "Room is closed"}

    repository.add_user_room(user, room)
    repository.commit_changes()

    logger.info(f"User {user.name} joined room {room.name}")
    return {
        "success": True,
        "room": room.name,
        "online": sorted(u.name for u in repository.get_online_users(room)),
    }


async def leave_room(room_name: str, client_id: str) -> Dict[str, Any]:
    """Leave a room. Your messages remain in its history.

    Args:
        room_name: Name of the room to leave
        client_id: Your client identifier (from connect)

    Returns:
        Success status
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": "User not found"}

    room = repository.get_room_by_name(room_name)
    if not room:
        return {"success": False, "error": "Room not found"}

    if not repository.is_user_in_room(user, room):
        return {"success": False, "error": "You are not in this room"}

    repository.remove_user_room(user, room)
    repository.commit_changes()

    logger.info(f"User {user.name} left room {room.name}")
    return {"success": True}


async def send_message(room_name: str, message: str, client_id: str) -> Dict[str, Any]:
    """Post a message to a room.

    Mentioning another user as @name leaves them a notification.

    Args:
        room_name: Name of the room
        message: The message to send
        client_id: Your client identifier (from connect)

    Returns:
        Success status with message_id and timestamp, or error information
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": f"User not found. Invalid client_id: {client_id}"}

    room = repository.get_room_by_name(room_name)
    if not room:
        return {"success": False, "error": "Room not found"}

    if not repository.is_user_in_room(user, room):
        return {"success": False, "error": "You are not in this room"}

    msg = ChatMessage(room=room, user=user, content=message)
    try:
        repository.add_message(msg)
    except ChatStoreError as e:
        logger.error(f"Error storing message in room {room_name}: {e}")
        return {"success": False, "error": str(e)}

    for name in set(MENTION_PATTERN.findall(message)):
        mentioned = repository.get_user_by_name(name)
        if mentioned and mentioned is not user:
            repository.add_notification(
                Notification(user_key=mentioned.key, message=msg, room=room)
            )
            logger.debug(f"Notified {mentioned.name} of mention in {room.name}")

    user.last_activity = msg.when
    repository.commit_changes()

    logger.info(f"Message from {user.name} in {room.name}: {message[:50]}...")
    return {
        "success": True,
        "message_id": msg.id,
        "timestamp": msg.when.isoformat(),
    }


async def get_history(room_name: str) -> Dict[str, Any]:
    """Retrieve the messages of a room in the order they were posted.

    Args:
        room_name: Name of the room

    Returns:
        room, messages list, and total_count
    """
    room = repository.get_room_by_name(room_name)
    if not room:
        return {"room": room_name, "exists": False, "error": "Room not found"}

    messages = repository.get_messages_by_room(room).to_list()
    return {
        "room": room.name,
        "messages": [_message_dict(m) for m in messages],
        "total_count": len(messages),
    }


async def get_previous_messages(message_id: str) -> Dict[str, Any]:
    """Retrieve every message, in any room, posted before the given one.

    Args:
        message_id: Identifier of the reference message

    Returns:
        messages list, empty if the message is unknown
    """
    messages = repository.get_previous_messages(message_id)
    return {"messages": [_message_dict(m) for m in messages]}


async def list_rooms(client_id: str) -> Dict[str, Any]:
    """List the rooms you are allowed to see.

    Args:
        client_id: Your client identifier (from connect)

    Returns:
        rooms list with names and privacy flags
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": "User not found"}

    return {
        "success": True,
        "rooms": [
            {"name": r.name, "private": r.private, "joined": r in user.rooms}
            for r in repository.get_allowed_rooms(user)
        ],
    }


async def search_users(name: str) -> Dict[str, Any]:
    """Find online users whose name contains the given text.

    Args:
        name: Part of a display name, case does not matter

    Returns:
        users list of display names
    """
    return {"users": [u.name for u in repository.search_users(name)]}


async def get_notifications(client_id: str) -> Dict[str, Any]:
    """List the notifications waiting for you.

    Args:
        client_id: Your client identifier (from connect)

    Returns:
        notifications list
    """
    user = _user_for_client(client_id)
    if not user:
        return {"success": False, "error": "User not found"}

    return {
        "success": True,
        "notifications": [
            {
                "notification_id": n.key,
                "room": n.room.name if n.room else None,
                "message": _message_dict(n.message) if n.message else None,
                "read": n.read,
            }
            for n in repository.get_notifications_by_user(user)
        ],
    }


async def get_room_status(room_name: str) -> Dict[str, Any]:
    """Lightweight status check for a room.

    Args:
        room_name: Name of the room to check

    Returns:
        Room metadata including exists, private, participants, online
        members and message_count
    """
    room = repository.get_room_and_users_by_name(room_name)
    if not room:
        return {"room": room_name, "exists": False, "error": "Room not found"}

    messages = repository.get_messages_by_room(room).to_list()
    return {
        "room": room.name,
        "exists": True,
        "private": room.private,
        "closed": room.closed,
        "participants": sorted(u.name for u in room.users),
        "online": sorted(u.name for u in repository.get_online_users(room)),
        "message_count": len(messages),
        "last_activity": messages[-1].when.isoformat() if messages else None,
    }


# Registered after definition so each tool stays a plain coroutine function
for _tool in (
    register_user,
    connect,
    disconnect,
    create_room,
    join_room,
    leave_room,
    send_message,
    get_history,
    get_previous_messages,
    list_rooms,
    search_users,
    get_notifications,
    get_room_status,
):
    mcp.tool()(_tool)

# Expose ASGI app for uvicorn
app = mcp.http_app()


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    host = os.environ.get("CHAT_STORE_HOST", "0.0.0.0")
    port = int(os.environ.get("CHAT_STORE_PORT", "8000"))
    log_level = os.environ.get("CHAT_STORE_LOG_LEVEL", "INFO").upper()
    logging.getLogger().setLevel(log_level)

    uvicorn.run("chat_store.server:app", host=host, port=port, log_level=log_level.lower())


if __name__ == "__main__":
    main()
