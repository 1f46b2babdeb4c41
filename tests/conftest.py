"""Shared fixtures for chat store tests."""

import pytest

from chat_store.models import ChatRoom, ChatUser, UserStatus
from chat_store.repository import InMemoryRepository


@pytest.fixture
def repo():
    """Create an empty repository."""
    return InMemoryRepository()


@pytest.fixture
def alice(repo):
    """Register an online user named Alice."""
    user = ChatUser(name="Alice", status=UserStatus.ACTIVE)
    repo.add_user(user)
    return user


@pytest.fixture
def bob(repo):
    """Register an online user named Bob."""
    user = ChatUser(name="Bob", status=UserStatus.ACTIVE)
    repo.add_user(user)
    return user


@pytest.fixture
def lobby(repo):
    """Register a public room."""
    room = ChatRoom(name="Lobby")
    repo.add_room(room)
    return room
