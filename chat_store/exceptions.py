"""Errors raised by the chat store."""

from typing import Any


class ChatStoreError(Exception):
    """Base class for chat store errors."""


class ParentNotFoundError(ChatStoreError):
    """A mutation referenced a parent entity that is not registered.

    Attributes:
        entity: The child entity whose parent could not be located.
    """

    parent_kind = "parent"

    def __init__(self, entity: Any, detail: str = "") -> None:
        self.entity = entity
        message = f"{self.parent_kind} not registered for {type(entity).__name__}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RoomNotFoundError(ParentNotFoundError):
    """The room a message belongs to is not registered."""

    parent_kind = "room"


class UserNotFoundError(ParentNotFoundError):
    """The user owning a client is not registered."""

    parent_kind = "user"
