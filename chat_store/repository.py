"""Repository contract and its in-memory implementation."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar
import logging
import threading

from chat_store.exceptions import RoomNotFoundError, UserNotFoundError
from chat_store.models import (
    Attachment,
    ChatClient,
    ChatMessage,
    ChatRoom,
    ChatUser,
    ChatUserIdentity,
    Notification,
)
from chat_store.query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _equals_ignore_case(value: Optional[str], other: Optional[str]) -> bool:
    return value is not None and other is not None and value.lower() == other.lower()


class ChatRepository(ABC):
    """Data-access contract for the chat domain.

    Any backing store (in-memory or persistent) implements this so the
    application layer can use either interchangeably.
    """

    @property
    @abstractmethod
    def users(self) -> Query[ChatUser]: ...

    @property
    @abstractmethod
    def rooms(self) -> Query[ChatRoom]: ...

    @property
    @abstractmethod
    def clients(self) -> Query[ChatClient]: ...

    @abstractmethod
    def add_user(self, user: ChatUser) -> None: ...

    @abstractmethod
    def add_room(self, room: ChatRoom) -> None: ...

    @abstractmethod
    def add_attachment(self, attachment: Attachment) -> None: ...

    @abstractmethod
    def add_notification(self, notification: Notification) -> None: ...

    @abstractmethod
    def add_identity(self, identity: ChatUserIdentity) -> None: ...

    @abstractmethod
    def add_message(self, message: ChatMessage) -> None: ...

    @abstractmethod
    def add_client(self, client: ChatClient) -> None: ...

    @abstractmethod
    def remove_client(self, client: ChatClient) -> None: ...

    @abstractmethod
    def remove_room(self, room: ChatRoom) -> None: ...

    @abstractmethod
    def remove_user(self, user: ChatUser) -> None: ...

    @abstractmethod
    def remove_identity(self, identity: ChatUserIdentity) -> None: ...

    @abstractmethod
    def remove_notification(self, notification: Notification) -> None: ...

    @abstractmethod
    def get_user_by_id(self, user_id: str) -> Optional[ChatUser]: ...

    @abstractmethod
    def get_user_by_name(self, user_name: str) -> Optional[ChatUser]: ...

    @abstractmethod
    def get_room_by_name(
        self, room_name: str, include_users: bool = False, include_owners: bool = False
    ) -> Optional[ChatRoom]: ...

    @abstractmethod
    def get_room_and_users_by_name(self, room_name: str) -> Optional[ChatRoom]: ...

    @abstractmethod
    def get_user_by_legacy_identity(self, user_identity: str) -> Optional[ChatUser]: ...

    @abstractmethod
    def get_user_by_identity(
        self, provider_name: str, user_identity: str
    ) -> Optional[ChatUser]: ...

    @abstractmethod
    def get_notification_by_id(self, notification_id: int) -> Optional[Notification]: ...

    @abstractmethod
    def get_client_by_id(
        self, client_id: str, include_user: bool = False
    ) -> Optional[ChatClient]: ...

    @abstractmethod
    def get_user_by_client_id(self, client_id: str) -> Optional[ChatUser]: ...

    @abstractmethod
    def get_allowed_rooms(self, user: ChatUser) -> Query[ChatRoom]: ...

    @abstractmethod
    def get_notifications_by_user(self, user: ChatUser) -> Query[Notification]: ...

    @abstractmethod
    def get_messages_by_room(self, room: ChatRoom) -> Query[ChatMessage]: ...

    @abstractmethod
    def get_online_users(self, room: Optional[ChatRoom] = None) -> Query[ChatUser]: ...

    @abstractmethod
    def search_users(self, name: str) -> Query[ChatUser]: ...

    @abstractmethod
    def get_previous_messages(self, message_id: str) -> Query[ChatMessage]: ...

    @abstractmethod
    def get_message_by_id(self, message_id: str) -> Optional[ChatMessage]: ...

    @abstractmethod
    def is_user_in_room(
        self, user: ChatUser, room: ChatRoom, match_by_name: bool = False
    ) -> bool: ...

    @abstractmethod
    def add_user_room(self, user: ChatUser, room: ChatRoom) -> None: ...

    @abstractmethod
    def remove_user_room(self, user: ChatUser, room: ChatRoom) -> None: ...

    @abstractmethod
    def commit_changes(self) -> None: ...

    @abstractmethod
    def reload(self, entity: Any) -> None: ...

    @abstractmethod
    def dispose(self) -> None: ...

    def __enter__(self) -> "ChatRepository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class InMemoryRepository(ChatRepository):
    """Volatile repository holding every entity in process memory.

    Messages are stored only inside their room and clients only inside
    their user; there is no global index for either. Every lookup is a
    linear scan. A single re-entrant lock guards mutations and the
    snapshots that queries iterate over.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: list[ChatUser] = []
        self._rooms: list[ChatRoom] = []
        self._identities: list[ChatUserIdentity] = []
        self._attachments: list[Attachment] = []
        self._notifications: list[Notification] = []
        self._last_keys: dict[type, int] = {}

    def _snapshot(self, source: Callable[[], Iterable[T]]) -> Query[T]:
        """Build a query that copies its source under the lock on each pass."""

        def take() -> list[T]:
            with self._lock:
                return list(source())

        return Query(take)

    def _assign_key(self, entity: Any, collection: Iterable[Any]) -> None:
        """Give a keyless entity a key above every key its type has used."""
        kind = type(entity)
        if entity.key is None:
            in_use = max((e.key for e in collection if e.key is not None), default=0)
            entity.key = max(in_use, self._last_keys.get(kind, 0)) + 1
        self._last_keys[kind] = max(entity.key, self._last_keys.get(kind, 0))

    @staticmethod
    def _discard(collection: list[Any], entity: Any) -> None:
        try:
            collection.remove(entity)
        except ValueError:
            logger.debug(f"Ignoring removal of unregistered {type(entity).__name__}")

    def _find_owner(self, client: ChatClient) -> Optional[ChatUser]:
        return next((u for u in self._users if u == client.user), None)

    def _all_messages(self) -> Iterator[ChatMessage]:
        for room in self._rooms:
            yield from room.messages

    # Collections

    @property
    def users(self) -> Query[ChatUser]:
        return self._snapshot(lambda: self._users)

    @property
    def rooms(self) -> Query[ChatRoom]:
        return self._snapshot(lambda: self._rooms)

    @property
    def clients(self) -> Query[ChatClient]:
        """Connected clients of every registered user."""
        return self._snapshot(
            lambda: (c for u in self._users for c in u.connected_clients)
        )

    @property
    def attachments(self) -> Query[Attachment]:
        return self._snapshot(lambda: self._attachments)

    # Mutations

    def add_user(self, user: ChatUser) -> None:
        with self._lock:
            if any(_equals_ignore_case(u.name, user.name) for u in self._users):
                logger.warning(f"User name {user.name!r} is already registered")
            self._assign_key(user, self._users)
            self._users.append(user)
        logger.debug(f"Added user {user.name} ({user.id})")

    def add_room(self, room: ChatRoom) -> None:
        with self._lock:
            if any(_equals_ignore_case(r.name, room.name) for r in self._rooms):
                logger.warning(f"Room name {room.name!r} is already registered")
            self._assign_key(room, self._rooms)
            self._rooms.append(room)
        logger.debug(f"Added room {room.name}")

    def add_attachment(self, attachment: Attachment) -> None:
        with self._lock:
            self._assign_key(attachment, self._attachments)
            self._attachments.append(attachment)

    def add_notification(self, notification: Notification) -> None:
        with self._lock:
            self._assign_key(notification, self._notifications)
            self._notifications.append(notification)

    def add_identity(self, identity: ChatUserIdentity) -> None:
        """Register an identity and link it into its user, when it has one."""
        with self._lock:
            self._assign_key(identity, self._identities)
            self._identities.append(identity)
            if identity.user is None:
                logger.debug(
                    f"Identity {identity.provider_name}:{identity.identity} has no user"
                )
                return
            identity.user.identities.append(identity)

    def add_message(self, message: ChatMessage) -> None:
        """Append a message to the registered room it references.

        Raises:
            RoomNotFoundError: If ``message.room`` is not a registered room.
        """
        with self._lock:
            room = next((r for r in self._rooms if r == message.room), None)
            if room is None:
                logger.warning(f"Message {message.id} references an unregistered room")
                raise RoomNotFoundError(message, f"message {message.id}")
            self._assign_key(message, self._all_messages())
            room.messages.append(message)

    def add_client(self, client: ChatClient) -> None:
        """Attach a client to the registered user it references.

        Raises:
            UserNotFoundError: If ``client.user`` is not a registered user.
        """
        with self._lock:
            user = self._find_owner(client)
            if user is None:
                logger.warning(f"Client {client.id} references an unregistered user")
                raise UserNotFoundError(client, f"client {client.id}")
            self._assign_key(client, (c for u in self._users for c in u.connected_clients))
            user.connected_clients.append(client)

    def remove_client(self, client: ChatClient) -> None:
        """Detach a client from its owning user.

        Raises:
            UserNotFoundError: If ``client.user`` is not a registered user.
        """
        with self._lock:
            user = self._find_owner(client)
            if user is None:
                logger.warning(f"Client {client.id} references an unregistered user")
                raise UserNotFoundError(client, f"client {client.id}")
            self._discard(user.connected_clients, client)

    def remove_room(self, room: ChatRoom) -> None:
        with self._lock:
            self._discard(self._rooms, room)

    def remove_user(self, user: ChatUser) -> None:
        with self._lock:
            self._discard(self._users, user)

    def remove_identity(self, identity: ChatUserIdentity) -> None:
        with self._lock:
            self._discard(self._identities, identity)

    def remove_notification(self, notification: Notification) -> None:
        with self._lock:
            self._discard(self._notifications, notification)

    # Lookups

    def get_user_by_id(self, user_id: str) -> Optional[ChatUser]:
        return self.users.where(lambda u: _equals_ignore_case(u.id, user_id)).first()

    def get_user_by_name(self, user_name: str) -> Optional[ChatUser]:
        return self.users.where(lambda u: _equals_ignore_case(u.name, user_name)).first()

    def get_room_by_name(
        self, room_name: str, include_users: bool = False, include_owners: bool = False
    ) -> Optional[ChatRoom]:
        # Users and owners are always loaded in memory; the flags are accepted
        # for compatibility with stores that load them on demand.
        return self.rooms.where(lambda r: _equals_ignore_case(r.name, room_name)).first()

    def get_room_and_users_by_name(self, room_name: str) -> Optional[ChatRoom]:
        return self.get_room_by_name(room_name)

    def get_user_by_legacy_identity(self, user_identity: str) -> Optional[ChatUser]:
        return self.users.where(lambda u: u.identity == user_identity).first()

    def get_user_by_identity(
        self, provider_name: str, user_identity: str
    ) -> Optional[ChatUser]:
        identity = self._snapshot(lambda: self._identities).where(
            lambda i: i.identity == user_identity and i.provider_name == provider_name
        ).first()
        if identity is None:
            return None
        return identity.user

    def get_notification_by_id(self, notification_id: int) -> Optional[Notification]:
        return self._snapshot(lambda: self._notifications).where(
            lambda n: n.key == notification_id
        ).first()

    def get_client_by_id(
        self, client_id: str, include_user: bool = False
    ) -> Optional[ChatClient]:
        return self.clients.where(lambda c: c.id == client_id).first()

    def get_user_by_client_id(self, client_id: str) -> Optional[ChatUser]:
        return self.users.where(
            lambda u: any(c.id == client_id for c in u.connected_clients)
        ).first()

    # Listings

    def get_allowed_rooms(self, user: ChatUser) -> Query[ChatRoom]:
        """Public rooms plus private rooms that list ``user`` as allowed."""
        return self.rooms.where(lambda r: r.is_allowed(user))

    def get_notifications_by_user(self, user: ChatUser) -> Query[Notification]:
        return self._snapshot(lambda: self._notifications).where(
            lambda n: n.user_key == user.key
        )

    def get_messages_by_room(self, room: ChatRoom) -> Query[ChatMessage]:
        return self._snapshot(lambda: room.messages)

    def get_online_users(self, room: Optional[ChatRoom] = None) -> Query[ChatUser]:
        """Online users, across the store or among the members of ``room``."""
        if room is None:
            users = self.users
        else:
            users = self._snapshot(lambda: room.users)
        return users.where(lambda u: u.is_online)

    def search_users(self, name: str) -> Query[ChatUser]:
        """Online users whose name contains ``name``, ignoring case."""
        needle = name.lower()
        return self.get_online_users().where(
            lambda u: u.name is not None and needle in u.name.lower()
        )

    def get_previous_messages(self, message_id: str) -> Query[ChatMessage]:
        """Messages in any room posted strictly before the given message.

        There is no message index, so this walks every message of every
        room: O(total messages). Results follow room order, then each
        room's insertion order.
        """

        def previous() -> list[ChatMessage]:
            with self._lock:
                reference = self.get_message_by_id(message_id)
                if reference is None:
                    return []
                return [m for m in self._all_messages() if m.when < reference.when]

        return Query(previous)

    def get_message_by_id(self, message_id: str) -> Optional[ChatMessage]:
        return self._snapshot(self._all_messages).where(
            lambda m: m.id == message_id
        ).first()

    # Membership

    def is_user_in_room(
        self, user: ChatUser, room: ChatRoom, match_by_name: bool = False
    ) -> bool:
        """Check room membership by user id, or by display name if requested."""
        with self._lock:
            if match_by_name:
                return any(u.name == user.name for u in room.users)
            return any(u.id == user.id for u in room.users)

    def add_user_room(self, user: ChatUser, room: ChatRoom) -> None:
        with self._lock:
            user.rooms.add(room)
            room.users.add(user)
        logger.debug(f"User {user.name} joined room {room.name}")

    def remove_user_room(self, user: ChatUser, room: ChatRoom) -> None:
        with self._lock:
            user.rooms.discard(room)
            room.users.discard(user)
        logger.debug(f"User {user.name} left room {room.name}")

    # Lifecycle

    def commit_changes(self) -> None:
        """Nothing to flush; changes are live as soon as they are made."""

    def reload(self, entity: Any) -> None:
        """Nothing to reload; the in-memory entity is the only copy."""

    def dispose(self) -> None:
        """Nothing to release."""
