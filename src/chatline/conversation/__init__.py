"""Conversation model and persistence."""

from .models import Role, Turn
from .storage import FileStorage, KeyValueStorage, MemoryStorage
from .store import EXAMPLE_CONVERSATION, ConversationStore

__all__ = [
    "EXAMPLE_CONVERSATION",
    "ConversationStore",
    "FileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "Role",
    "Turn",
]
