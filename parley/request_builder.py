"""Request construction for the chat-completions endpoint.

Turns the selected system prompt, the conversation window and the message that
needs replies into an immutable RequestPayload, and renders it as an
OpenAI-compatible request document.

Context messages become alternating turns: the local user's messages are sent
as ``assistant`` turns and everybody else's as ``user`` turns, each formatted
as ``"{sender} [HH:MM:SS]: {content}"``. The final turn is tagged with
CURRENT_MESSAGE_MARKER so the model can tell which message needs options.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any

from contracts.conversation import ContextMessage
from parley.config import ParleyConfig
from parley.errors import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

CURRENT_MESSAGE_MARKER = "[Reply options needed for this message]"

TIME_LABEL_FORMAT = "%H:%M:%S"

# Valid ranges; values outside are omitted so the endpoint applies its defaults
MAX_TEMPERATURE = 2.0
MAX_TOKENS_LIMIT = 4096


def format_time_label(timestamp_ms: int, tz: tzinfo | None = None) -> str | None:
    """Format epoch milliseconds as a fixed-width ``HH:MM:SS`` label.

    Returns None when the timestamp lies outside the platform's datetime range.
    """
    try:
        moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)
    except (OverflowError, OSError, ValueError):
        logger.debug("Timestamp out of range: %s", timestamp_ms)
        return None
    return moment.strftime(TIME_LABEL_FORMAT)


def valid_temperature(value: float | None) -> float | None:
    """Return ``value`` if it lies in (0, 2], else None."""
    if value is None or not 0 < value <= MAX_TEMPERATURE:
        return None
    return value


def valid_max_tokens(value: int | None) -> int | None:
    """Return ``value`` if it lies in (0, 4096], else None."""
    if value is None or not 0 < value <= MAX_TOKENS_LIMIT:
        return None
    return value


@dataclass(frozen=True)
class RequestPayload:
    """Everything needed for one attempt. Built fresh per attempt.

    Attributes:
        model: Model identifier.
        system_prompt: Combined system instruction.
        current_message: Text of the message that needs reply options.
        current_sender: Display name of its sender ("" if unknown).
        current_timestamp: Epoch milliseconds of the message (0 if unknown).
        context_messages: Prior messages, oldest first.
        temperature: Sampling temperature, or None to use the endpoint default.
        max_tokens: Completion token cap, or None to use the endpoint default.
    """

    model: str
    system_prompt: str
    current_message: str
    current_sender: str = ""
    current_timestamp: int = 0
    context_messages: tuple[ContextMessage, ...] = ()
    temperature: float | None = None
    max_tokens: int | None = None

    def format_current_message(self, tz: tzinfo | None = None) -> str:
        if self.current_sender and self.current_timestamp > 0:
            time_label = format_time_label(self.current_timestamp, tz)
        else:
            time_label = None
        if time_label is not None:
            return (
                f"{CURRENT_MESSAGE_MARKER} {self.current_sender} [{time_label}]: "
                f"{self.current_message}"
            )
        return f"{CURRENT_MESSAGE_MARKER} {self.current_message}"

    def to_messages(self, tz: tzinfo | None = None) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        for msg in self.context_messages:
            time_label = format_time_label(msg.timestamp, tz)
            prefix = msg.sender_name if time_label is None else f"{msg.sender_name} [{time_label}]"
            messages.append(
                {
                    "role": "assistant" if msg.is_self else "user",
                    "content": f"{prefix}: {msg.content}",
                }
            )
        messages.append({"role": "user", "content": self.format_current_message(tz)})
        return messages

    def to_request_body(self, tz: tzinfo | None = None) -> dict[str, Any]:
        """Render the chat-completions request document."""
        body: dict[str, Any] = {"model": self.model}
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens
        body["messages"] = self.to_messages(tz)
        return body


def build_payload(
    config: ParleyConfig,
    system_prompt: str,
    current_message: str,
    *,
    current_sender: str = "",
    current_timestamp: int = 0,
    context_messages: Sequence[ContextMessage] | None = None,
) -> RequestPayload:
    """Build a RequestPayload from configuration and conversation state.

    Raises:
        ConfigurationError: If the endpoint URL or API key is missing.
    """
    require_endpoint(config)

    temperature = valid_temperature(config.temperature)
    max_tokens = valid_max_tokens(config.max_tokens)
    if temperature is None and config.temperature is not None:
        logger.debug("Omitting out-of-range temperature %s", config.temperature)
    if max_tokens is None and config.max_tokens is not None:
        logger.debug("Omitting out-of-range max_tokens %s", config.max_tokens)

    return RequestPayload(
        model=config.model,
        system_prompt=system_prompt,
        current_message=current_message,
        current_sender=current_sender or "",
        current_timestamp=current_timestamp or 0,
        context_messages=tuple(context_messages or ()),
        temperature=temperature,
        max_tokens=max_tokens,
    )


def require_endpoint(config: ParleyConfig) -> None:
    """Fail fast when the endpoint cannot be called at all."""
    if not config.endpoint_url.strip():
        raise ConfigurationError(
            "Model endpoint URL is not configured",
            config_key="endpoint_url",
            code=ErrorCode.CFG_MISSING,
        )
    if not config.api_key.strip():
        raise ConfigurationError(
            "API key is not configured",
            config_key="api_key",
            code=ErrorCode.CFG_MISSING,
        )


def build_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def mask_api_key(api_key: str | None) -> str:
    """Show only the first and last four characters of a key."""
    if not api_key or len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}****{api_key[-4:]}"


def build_request_log(
    provider: str,
    model: str,
    url: str,
    api_key: str,
    body: dict[str, Any],
) -> str:
    """Render a request for verbose diagnostics, with the key masked."""
    lines = [
        f"Provider: {provider}",
        f"Model: {model}",
        f"URL: {url}",
        "Headers:",
        f"  Authorization: Bearer {mask_api_key(api_key)}",
        "  Content-Type: application/json",
        "Body:",
        json.dumps(body, indent=2, ensure_ascii=False),
    ]
    return "\n".join(lines)
