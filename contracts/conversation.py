"""Conversation data contracts.

Messages and sender metadata are supplied by whatever tracks chat history in the
host application. Parley treats them as read-only input.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ContextMessage:
    """A prior message in the conversation window.

    Attributes:
        sender_name: Display name of the author.
        content: Message text.
        is_self: True if the local user wrote the message.
        timestamp: Unix epoch milliseconds.
    """

    sender_name: str
    content: str
    is_self: bool = False
    timestamp: int = 0


@dataclass(frozen=True)
class SenderInfo:
    """Who sent the message that needs reply options.

    Attributes:
        sender_id: Stable account identifier used by prompt whitelists/blacklists.
        sender_name: Display name used when formatting the request.
        group_id: Group chat identifier, or None for a direct conversation.
        timestamp: Unix epoch milliseconds of the message (0 if unknown).
    """

    sender_id: str
    sender_name: str = ""
    group_id: str | None = None
    timestamp: int = 0

    @property
    def conversation_key(self) -> str:
        """Key identifying the conversation this message belongs to."""
        if self.group_id:
            return f"group:{self.group_id}"
        return f"user:{self.sender_id}"
