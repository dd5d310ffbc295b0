from __future__ import annotations

import threading
from functools import lru_cache
from typing import Dict, Optional, Protocol

from bepit.agents.state import ConversationState


class ConversationCache(Protocol):
    def get(self, conversation_id: str) -> Optional[ConversationState]:
        ...

    def set(self, state: ConversationState) -> None:
        ...


class InMemoryConversationCache:
    """
    Process-local conversation cache keyed by conversation id.

    Used only when the relational store cannot be reached. Entries are never
    evicted and are lost on restart; nothing is shared between worker processes.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._conversations: Dict[str, ConversationState] = {}

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        with self._lock:
            state = self._conversations.get(conversation_id)
            return state.model_copy(deep=True) if state is not None else None

    def set(self, state: ConversationState) -> None:
        with self._lock:
            self._conversations[state.conversationId] = state.model_copy(deep=True)

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._conversations.pop(conversation_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)


@lru_cache
def get_conversation_cache() -> ConversationCache:
    return InMemoryConversationCache()
