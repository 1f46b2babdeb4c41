"""Data models for the chat store.

Entities compare and hash by identity (``eq=False``), so membership tests
and removals match the exact registered object.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid


class UserStatus(Enum):
    """Presence of a user."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    OFFLINE = "offline"


@dataclass(eq=False)
class ChatUser:
    """Represents a registered user."""

    name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    key: Optional[int] = None
    identity: Optional[str] = None  # legacy single-provider identity
    email: Optional[str] = None
    hash: Optional[str] = None
    status: UserStatus = UserStatus.OFFLINE
    last_activity: datetime = field(default_factory=datetime.now)
    note: Optional[str] = None
    is_admin: bool = False
    is_banned: bool = False
    identities: list["ChatUserIdentity"] = field(default_factory=list)
    connected_clients: list["ChatClient"] = field(default_factory=list)
    rooms: set["ChatRoom"] = field(default_factory=set)

    @property
    def is_online(self) -> bool:
        """Whether the user currently counts as online."""
        return self.status is not UserStatus.OFFLINE


@dataclass(eq=False)
class ChatRoom:
    """Represents a chat room and the messages posted in it."""

    name: str = ""
    key: Optional[int] = None
    private: bool = False
    topic: Optional[str] = None
    welcome: Optional[str] = None
    closed: bool = False
    invite_code: Optional[str] = None
    creator: Optional[ChatUser] = None
    owners: set[ChatUser] = field(default_factory=set)
    allowed_users: set[ChatUser] = field(default_factory=set)
    messages: list["ChatMessage"] = field(default_factory=list)
    users: set[ChatUser] = field(default_factory=set)

    def is_allowed(self, user: ChatUser) -> bool:
        """Check if a user may see this room."""
        return not self.private or user in self.allowed_users


@dataclass(eq=False)
class ChatUserIdentity:
    """An external login identity attached to a user."""

    provider_name: str = ""
    identity: str = ""
    user: Optional[ChatUser] = None
    email: Optional[str] = None
    key: Optional[int] = None


@dataclass(eq=False)
class ChatClient:
    """A live connection held by a user."""

    user: Optional[ChatUser] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    key: Optional[int] = None
    user_agent: str = ""
    last_activity: datetime = field(default_factory=datetime.now)


@dataclass(eq=False)
class ChatMessage:
    """Represents a chat message."""

    room: Optional[ChatRoom] = None
    user: Optional[ChatUser] = None
    content: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    key: Optional[int] = None
    when: datetime = field(default_factory=datetime.now)
    html_encoded: bool = False


@dataclass(eq=False)
class Notification:
    """A pending notice for a user, such as a mention."""

    user_key: Optional[int] = None
    message: Optional[ChatMessage] = None
    room: Optional[ChatRoom] = None
    read: bool = False
    key: Optional[int] = None


@dataclass(eq=False)
class Attachment:
    """An uploaded file posted to a room."""

    url: str = ""
    file_name: str = ""
    content_type: str = ""
    size: int = 0
    room: Optional[ChatRoom] = None
    owner: Optional[ChatUser] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    key: Optional[int] = None
    when: datetime = field(default_factory=datetime.now)
