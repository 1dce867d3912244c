"""Shared dependencies for API endpoints.

Provides the process-wide SuggestionService, its HTTP transport and
conversation history. Tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import threading

from parley.ai_log import AiLog, get_ai_log
from parley.config import get_config
from parley.history import ConversationHistory
from parley.suggestions import SuggestionService
from parley.transport import HttpxTransport

logger = logging.getLogger(__name__)

_service: SuggestionService | None = None
_transport: HttpxTransport | None = None
_lock = threading.Lock()


def get_suggestion_service() -> SuggestionService:
    """Get the shared suggestion service, creating it on first use."""
    global _service, _transport
    if _service is None:
        with _lock:
            if _service is None:
                config = get_config()
                _transport = HttpxTransport.from_config(config.transport)
                _service = SuggestionService(
                    config,
                    _transport,
                    history=ConversationHistory(config.context.max_messages),
                )
                logger.debug("Created suggestion service for model %s", config.model)
    return _service


def get_request_log() -> AiLog:
    return get_ai_log()


async def close_suggestion_service() -> None:
    """Close the shared transport and drop the service."""
    global _service, _transport
    transport = _transport
    with _lock:
        _service = None
        _transport = None
    if transport is not None:
        await transport.aclose()
