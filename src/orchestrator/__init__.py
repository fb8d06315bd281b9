"""Orchestrator - Conversation runs.

Drives assistant runs to completion, manages conversation records
and exposes the chat API.
"""

from orchestrator.waiter import RunCompletionWaiter
from orchestrator.store import (
    ConversationStore,
    InMemoryConversationStore,
    JsonFileConversationStore,
    create_store,
)
from orchestrator.conversation import ConversationOrchestrator

__all__ = [
    "RunCompletionWaiter",
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonFileConversationStore",
    "create_store",
    "ConversationOrchestrator",
]
