"""Reply suggestion service.

Ties prompt selection, request construction, the transport, the parsing
cascade and the retry controller together. One RetrySession is created per
``fetch_options`` call.

Calls are tracked per conversation (group id, else sender id). A newer call
for the same conversation supersedes older ones: a superseded session stops
retrying and never delivers its callbacks, so stale options cannot overwrite
fresh ones.

Usage:
    from parley.suggestions import SuggestionService
    from parley.transport import HttpxTransport

    service = SuggestionService(config, HttpxTransport.from_config(config.transport))
    options = await service.suggest("Are you coming tonight?", SenderInfo("alice"))
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any

from contracts.conversation import ContextMessage, SenderInfo
from contracts.transport import Scheduler, Transport
from parley.ai_log import AiLog, get_ai_log
from parley.config import DEFAULT_PROMPT_BODY, ParleyConfig
from parley.errors import (
    ConfigurationError,
    ErrorCode,
    HttpStatusError,
    NetworkError,
    ParleyError,
    RateLimitedError,
    RetriesExhaustedError,
    SessionStateError,
    error_from_parse_outcome,
)
from parley.history import ConversationHistory
from parley.observability.logging import log_event, timed_operation
from parley.parsing import parse_response
from parley.prompts import combine_prompt_bodies, select_prompts
from parley.request_builder import build_headers, build_payload, build_request_log
from parley.retry import RetrySession
from parley.scheduling import AsyncioScheduler

logger = logging.getLogger(__name__)

CONNECTION_TEST_MESSAGE = "hello"

# Raw model output kept in an AI log entry
RAW_PREVIEW_CHARS = 1000


class _OutcomeWaiter:
    """Bridges session callbacks to an awaitable result."""

    def __init__(self) -> None:
        self._future: asyncio.Future[list[str]] = asyncio.get_running_loop().create_future()

    def rearm(self) -> None:
        self._future = asyncio.get_running_loop().create_future()

    def set_result(self, options: list[str]) -> None:
        if not self._future.done():
            self._future.set_result(options)

    def set_exception(self, error: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    async def wait(self) -> list[str]:
        return await self._future


class SuggestionService:
    """Generates reply options for incoming messages.

    Args:
        config: Configuration snapshot. Read on every attempt.
        transport: HTTP collaborator.
        scheduler: Runs attempts and defers retries. Defaults to asyncio.
        ai_log: Request log. Defaults to the process-wide log.
        history: Conversation windows used when a call supplies no context.
    """

    def __init__(
        self,
        config: ParleyConfig,
        transport: Transport,
        scheduler: Scheduler | None = None,
        ai_log: AiLog | None = None,
        history: ConversationHistory | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._scheduler = scheduler or AsyncioScheduler()
        self._ai_log = ai_log if ai_log is not None else get_ai_log()
        self.history = history
        self._call_ids = itertools.count(1)
        self._latest_calls: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def ai_log(self) -> AiLog:
        return self._ai_log

    @property
    def active_conversations(self) -> int:
        """Conversations with a call that has not finished yet."""
        with self._lock:
            return len(self._latest_calls)

    # =========================================================================
    # Call tracking
    # =========================================================================

    def _register_call(self, conversation_key: str) -> int:
        with self._lock:
            call_id = next(self._call_ids)
            self._latest_calls[conversation_key] = call_id
        return call_id

    def _is_latest(self, conversation_key: str, call_id: int) -> bool:
        with self._lock:
            return self._latest_calls.get(conversation_key) == call_id

    def _release_call(self, conversation_key: str, call_id: int) -> None:
        """Forget a finished call unless a newer one has taken its place."""
        with self._lock:
            if self._latest_calls.get(conversation_key) == call_id:
                del self._latest_calls[conversation_key]

    # =========================================================================
    # Request pipeline
    # =========================================================================

    def _resolve_context(
        self,
        sender: SenderInfo,
        context_messages: Sequence[ContextMessage] | None,
    ) -> list[ContextMessage]:
        limit = self.config.context.max_messages
        if limit == 0:
            return []
        if context_messages is None:
            if self.history is None:
                return []
            context_messages = self.history.window(sender.conversation_key)
        return list(context_messages)[-limit:]

    def _record_error(self, message: str) -> None:
        config = self.config
        self._ai_log.record_error(config.provider, config.model, config.endpoint_url, message)

    async def _attempt(
        self,
        message: str,
        sender: SenderInfo,
        system_prompt: str,
        context: Sequence[ContextMessage],
        attempt: int,
    ) -> list[str]:
        """Issue one request and parse it.

        Raises:
            ConfigurationError: Endpoint or credential missing.
            NetworkError: No response received.
            RateLimitedError: HTTP 429.
            HttpStatusError: Other non-2xx status.
            ResponseFormatError: Output could not be turned into options.
        """
        config = self.config
        try:
            payload = build_payload(
                config,
                system_prompt,
                message,
                current_sender=sender.sender_name,
                current_timestamp=sender.timestamp,
                context_messages=context,
            )
        except ConfigurationError as e:
            self._record_error(f"Configuration error: {e.message}")
            raise

        url = config.endpoint_url
        body = payload.to_request_body()
        if config.logging.verbose_requests and logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Request:\n%s",
                build_request_log(config.provider, config.model, url, config.api_key, body),
            )

        try:
            with timed_operation(
                logger, "suggestions.request", level=logging.DEBUG, model=config.model, attempt=attempt
            ) as ctx:
                response = await self._transport.post(url, build_headers(config.api_key), body)
                ctx["status_code"] = response.status_code
        except NetworkError as e:
            self._record_error(f"Network error: {e.message}")
            raise

        if response.status_code == 429:
            self._record_error("Rate limited (HTTP 429)")
            raise RateLimitedError(body=response.text)
        if not response.is_success:
            error = HttpStatusError(status_code=response.status_code, body=response.text)
            self._record_error(f"HTTP {response.status_code}: {response.text[:RAW_PREVIEW_CHARS]}")
            raise error

        outcome = parse_response(response.text)
        if not outcome.ok:
            error = error_from_parse_outcome(outcome, raw_response=response.text)
            # Later attempts usually fail the same way; one sample is enough
            if attempt == 0:
                self._record_error(
                    f"{error.message}\nRaw response:\n{response.text[:RAW_PREVIEW_CHARS]}"
                )
            raise error

        return list(outcome.options or ())

    # =========================================================================
    # Public API
    # =========================================================================

    def fetch_options(
        self,
        message: str,
        sender: SenderInfo,
        context_messages: Sequence[ContextMessage] | None = None,
        *,
        on_success: Callable[[list[str]], None] | None = None,
        on_failure: Callable[[ParleyError], None] | None = None,
        on_exhausted: Callable[[Callable[[], None]], None] | None = None,
        on_discarded: Callable[[], None] | None = None,
    ) -> RetrySession | None:
        """Start generating reply options for a message.

        Must be called with a running event loop when the default scheduler
        is used.

        Args:
            message: Text of the message that needs replies.
            sender: Sender and conversation of the message.
            context_messages: Prior messages, oldest first. None falls back to
                the service's conversation history, if any.
            on_success: Receives at least three options.
            on_failure: Receives configuration, network and HTTP errors.
            on_exhausted: Receives the manual-retry handle after automatic
                retries are used up.
            on_discarded: Called if a newer call supersedes this one.

        Returns:
            The started session, or None when every prompt is off for this
            sender. No callback fires in that case.
        """
        config = self.config
        prompts = select_prompts(config.prompts, sender.sender_id, sender.group_id, config.ai_enabled)
        if not prompts:
            logger.debug("Suggestions suppressed for %s", sender.conversation_key)
            return None

        system_prompt = combine_prompt_bodies(prompts)
        context = self._resolve_context(sender, context_messages)
        key = sender.conversation_key
        ticket = {"call_id": self._register_call(key)}

        def attempt_fn(attempt: int) -> Any:
            return self._attempt(message, sender, system_prompt, context, attempt)

        def handle_success(options: list[str]) -> None:
            self._release_call(key, ticket["call_id"])
            self._ai_log.record_success(config.provider, config.model, message, len(options))
            if on_success is not None:
                on_success(options)

        def handle_exhausted(retry: Callable[[], None]) -> None:
            self._release_call(key, ticket["call_id"])
            self._record_error(f"Model output unusable after {config.retry.max_attempts} attempts")
            if on_exhausted is not None:
                on_exhausted(retry)

        def handle_failure(error: ParleyError) -> None:
            self._release_call(key, ticket["call_id"])
            if on_failure is not None:
                on_failure(error)

        def restart(_session: RetrySession) -> None:
            ticket["call_id"] = self._register_call(key)

        session = RetrySession(
            attempt_fn,
            self._scheduler,
            on_success=handle_success,
            on_failure=handle_failure,
            on_exhausted=handle_exhausted,
            max_attempts=config.retry.max_attempts,
            retry_delay=config.retry.delay_seconds,
            is_superseded=lambda: not self._is_latest(key, ticket["call_id"]),
            on_restart=restart,
            on_discarded=on_discarded,
            label=f"{key}#{ticket['call_id']}",
        )
        log_event(
            logger,
            "suggestions.fetch",
            level=logging.DEBUG,
            conversation=key,
            prompt_count=len(prompts),
            context_count=len(context),
        )
        return session.start()

    async def suggest(
        self,
        message: str,
        sender: SenderInfo,
        context_messages: Sequence[ContextMessage] | None = None,
    ) -> list[str]:
        """Generate reply options and wait for the outcome.

        Returns:
            The options, or an empty list when suggestions are suppressed.

        Raises:
            ParleyError: Configuration, network or HTTP failure.
            RetriesExhaustedError: Automatic retries were used up. Its
                ``retry`` attribute is a coroutine function that restarts the
                session and waits for the new outcome.
            SessionStateError: A newer call for the conversation superseded
                this one.
        """
        waiter = _OutcomeWaiter()
        session: RetrySession | None = None

        def handle_exhausted(retry: Callable[[], None]) -> None:
            async def retry_and_wait() -> list[str]:
                waiter.rearm()
                retry()
                return await waiter.wait()

            last_error = session.last_error if session is not None else None
            waiter.set_exception(
                RetriesExhaustedError(
                    attempts=self.config.retry.max_attempts,
                    retry=retry_and_wait,
                    last_error=last_error,
                )
            )

        def handle_discarded() -> None:
            waiter.set_exception(
                SessionStateError(
                    "Superseded by a newer request for this conversation",
                    code=ErrorCode.SES_SUPERSEDED,
                )
            )

        session = self.fetch_options(
            message,
            sender,
            context_messages,
            on_success=waiter.set_result,
            on_failure=waiter.set_exception,
            on_exhausted=handle_exhausted,
            on_discarded=handle_discarded,
        )
        if session is None:
            return []
        return await waiter.wait()

    async def test_connection(self) -> list[str]:
        """Send a test message with the first enabled prompt, without retries.

        Raises:
            ParleyError: Any failure, including unusable output.
        """
        enabled = [p for p in self.config.prompts if p.enabled]
        system_prompt = combine_prompt_bodies(enabled[:1]) or DEFAULT_PROMPT_BODY
        logger.info("Testing connection to %s", self.config.endpoint_url or "<unset>")
        options = await self._attempt(
            CONNECTION_TEST_MESSAGE,
            SenderInfo(sender_id="connection-test"),
            system_prompt,
            (),
            0,
        )
        self._ai_log.record_success(
            self.config.provider, self.config.model, CONNECTION_TEST_MESSAGE, len(options)
        )
        return options


__all__ = ["CONNECTION_TEST_MESSAGE", "SuggestionService"]
