"""In-memory data access for the chat domain."""

from chat_store.exceptions import (
    ChatStoreError,
    ParentNotFoundError,
    RoomNotFoundError,
    UserNotFoundError,
)
from chat_store.models import (
    Attachment,
    ChatClient,
    ChatMessage,
    ChatRoom,
    ChatUser,
    ChatUserIdentity,
    Notification,
    UserStatus,
)
from chat_store.query import Query
from chat_store.repository import ChatRepository, InMemoryRepository

__all__ = [
    "Attachment",
    "ChatClient",
    "ChatMessage",
    "ChatRepository",
    "ChatRoom",
    "ChatStoreError",
    "ChatUser",
    "ChatUserIdentity",
    "InMemoryRepository",
    "Notification",
    "ParentNotFoundError",
    "Query",
    "RoomNotFoundError",
    "UserNotFoundError",
    "UserStatus",
]
