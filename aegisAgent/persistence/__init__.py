"""Persistence utilities."""

from .conversation_store import (
    Conversation,
    ConversationStore,
    InMemoryConversationStore,
    SqliteConversationStore,
)

__all__ = [
    "Conversation",
    "ConversationStore",
    "InMemoryConversationStore",
    "SqliteConversationStore",
]
