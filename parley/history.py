"""Per-conversation message windows.

Keeps the most recent messages of each conversation so callers that do not
track context themselves (the HTTP API) can still send some to the model.
"""

from __future__ import annotations

import threading
from collections import deque

from contracts.conversation import ContextMessage


class ConversationHistory:
    """Thread-safe bounded message windows keyed by conversation.

    Args:
        max_messages: Messages kept per conversation. 0 keeps nothing.
    """

    def __init__(self, max_messages: int = 10) -> None:
        if max_messages < 0:
            raise ValueError("max_messages must be non-negative")
        self.max_messages = max_messages
        self._windows: dict[str, deque[ContextMessage]] = {}
        self._lock = threading.Lock()

    def add(self, conversation_key: str, message: ContextMessage) -> None:
        if self.max_messages == 0:
            return
        with self._lock:
            window = self._windows.get(conversation_key)
            if window is None:
                window = deque(maxlen=self.max_messages)
                self._windows[conversation_key] = window
            window.append(message)

    def window(self, conversation_key: str) -> list[ContextMessage]:
        """Messages for a conversation, oldest first."""
        with self._lock:
            return list(self._windows.get(conversation_key, ()))

    def clear(self, conversation_key: str | None = None) -> None:
        """Forget one conversation, or all of them."""
        with self._lock:
            if conversation_key is None:
                self._windows.clear()
            else:
                self._windows.pop(conversation_key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
