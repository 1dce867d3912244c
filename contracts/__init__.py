"""Contract interfaces for Parley.

This module exports the data contracts and Protocol interfaces shared by the
suggestion pipeline, its transports, and its callers. Implementations should
code against these contracts, not concrete implementations.
"""

from contracts.conversation import ContextMessage, SenderInfo
from contracts.transport import Scheduler, Transport, TransportResponse

__all__ = [
    # Conversation
    "ContextMessage",
    "SenderInfo",
    # Transport
    "Scheduler",
    "Transport",
    "TransportResponse",
]
