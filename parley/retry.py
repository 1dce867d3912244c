"""Retry controller for a single "get options for this message" call.

A RetrySession runs attempts through an injected scheduler, classifies each
failure, and either re-issues the request after a fixed delay or reports a
terminal outcome. Only format failures (ResponseFormatError subclasses) are
retried; configuration, network and HTTP failures are reported on first
occurrence. When automatic attempts run out the session waits for the caller
to invoke the manual-retry handle, which restarts the attempt counter.

State machine:

    IDLE -> REQUESTING -> SUCCEEDED
                       -> CLASSIFYING -> FAILED
                                      -> RETRY_SCHEDULED -> REQUESTING
                                      -> AWAITING_MANUAL_RETRY -> REQUESTING

Any non-terminal state may also move to DISCARDED once a newer call for the
same conversation supersedes the session. A discarded session never invokes
its success, failure or exhausted callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum

from contracts.transport import Scheduler
from parley.errors import ParleyError, SessionStateError
from parley.observability.logging import log_event

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 0.5

AttemptFn = Callable[[int], Awaitable[Sequence[str]]]
SuccessCallback = Callable[[list[str]], None]
FailureCallback = Callable[[ParleyError], None]
ExhaustedCallback = Callable[[Callable[[], None]], None]


class SessionState(str, Enum):
    """Lifecycle states of a RetrySession."""

    IDLE = "idle"
    REQUESTING = "requesting"
    CLASSIFYING = "classifying"
    RETRY_SCHEDULED = "retry_scheduled"
    AWAITING_MANUAL_RETRY = "awaiting_manual_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISCARDED = "discarded"


TERMINAL_STATES = frozenset({SessionState.SUCCEEDED, SessionState.FAILED, SessionState.DISCARDED})

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.REQUESTING}),
    SessionState.REQUESTING: frozenset(
        {SessionState.SUCCEEDED, SessionState.CLASSIFYING, SessionState.DISCARDED}
    ),
    SessionState.CLASSIFYING: frozenset(
        {
            SessionState.RETRY_SCHEDULED,
            SessionState.AWAITING_MANUAL_RETRY,
            SessionState.FAILED,
        }
    ),
    SessionState.RETRY_SCHEDULED: frozenset({SessionState.REQUESTING, SessionState.DISCARDED}),
    SessionState.AWAITING_MANUAL_RETRY: frozenset(
        {SessionState.REQUESTING, SessionState.DISCARDED}
    ),
    SessionState.SUCCEEDED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.DISCARDED: frozenset(),
}


def _noop(*_args: object) -> None:
    return None


class RetrySession:
    """Drives one logical request through attempts, retries and callbacks.

    Args:
        attempt_fn: Coroutine function called with the zero-based attempt
            index. Returns the options on success, raises ParleyError on
            failure. Any other exception is reported as a non-retryable
            failure.
        scheduler: Runs attempts and defers retries.
        on_success: Called with the option list.
        on_failure: Called with the error for non-retryable failures.
        on_exhausted: Called with the manual-retry handle once automatic
            attempts are used up.
        max_attempts: Automatic attempts per run, first try included.
        retry_delay: Seconds between automatic attempts.
        is_superseded: Returns True once a newer call replaced this one.
        on_restart: Called right before a manual retry starts a new run.
        on_discarded: Called once if the session is superseded. Used by
            awaiting callers that would otherwise wait forever.
        label: Identifier used in log messages.
    """

    def __init__(
        self,
        attempt_fn: AttemptFn,
        scheduler: Scheduler,
        *,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
        on_exhausted: ExhaustedCallback | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        is_superseded: Callable[[], bool] | None = None,
        on_restart: Callable[[RetrySession], None] | None = None,
        on_discarded: Callable[[], None] | None = None,
        label: str = "",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._attempt_fn = attempt_fn
        self._scheduler = scheduler
        self._on_success = on_success or _noop
        self._on_failure = on_failure or _noop
        self._on_exhausted = on_exhausted or _noop
        self._is_superseded = is_superseded or (lambda: False)
        self._on_restart = on_restart
        self._on_discarded = on_discarded or _noop
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.label = label

        self.attempt = 0
        self.pending = False
        self.state = SessionState.IDLE
        self.history: list[SessionState] = [SessionState.IDLE]
        self.options: list[str] | None = None
        self.last_error: ParleyError | None = None
        # Requests actually issued across all runs, manual retries included
        self.requests_made = 0

    def __repr__(self) -> str:
        return (
            f"RetrySession(label={self.label!r}, state={self.state.value}, "
            f"attempt={self.attempt}/{self.max_attempts})"
        )

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Illegal transition {self.state.value} -> {new_state.value}",
                details={"label": self.label, "from": self.state.value, "to": new_state.value},
            )
        logger.debug("Session %s: %s -> %s", self.label, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    # =========================================================================
    # Public operations
    # =========================================================================

    def start(self) -> RetrySession:
        """Issue the first attempt.

        Raises:
            SessionStateError: If the session was already started.
        """
        if self.state != SessionState.IDLE:
            raise SessionStateError(
                "Session already started", details={"state": self.state.value}
            )
        self._launch()
        return self

    def manual_retry(self) -> None:
        """Restart from attempt 0 after exhaustion.

        Raises:
            SessionStateError: Unless the session is awaiting a manual retry.
        """
        if self.state != SessionState.AWAITING_MANUAL_RETRY:
            raise SessionStateError(
                "Manual retry is only available after automatic retries are exhausted",
                details={"state": self.state.value},
            )
        logger.info("Manual retry for session %s", self.label)
        self.attempt = 0
        self.last_error = None
        if self._on_restart is not None:
            self._on_restart(self)
        self._launch()

    def discard(self) -> None:
        """Drop the session. No further callbacks or retries happen."""
        if self.state == SessionState.DISCARDED:
            return
        self._transition(SessionState.DISCARDED)
        log_event(
            logger,
            "retry.discarded",
            level=logging.DEBUG,
            session=self.label,
            attempt=self.attempt,
        )
        self._on_discarded()

    # =========================================================================
    # Internals
    # =========================================================================

    def _launch(self) -> None:
        self._transition(SessionState.REQUESTING)
        self.pending = True
        self.requests_made += 1
        self._scheduler.spawn(self._run_attempt(self.attempt))

    async def _run_attempt(self, attempt: int) -> None:
        error: ParleyError | None = None
        options: list[str] = []
        try:
            options = list(await self._attempt_fn(attempt))
        except ParleyError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected error in attempt %d of session %s", attempt, self.label)
            error = ParleyError(f"Unexpected error: {e}", cause=e)
        finally:
            self.pending = False

        if self._is_superseded():
            self.discard()
            return

        if error is None:
            self._transition(SessionState.SUCCEEDED)
            self.options = options
            log_event(
                logger,
                "retry.succeeded",
                level=logging.DEBUG,
                session=self.label,
                attempt=attempt,
                option_count=len(options),
            )
            self._on_success(options)
            return

        self._transition(SessionState.CLASSIFYING)
        self._classify(error, attempt)

    def _classify(self, error: ParleyError, attempt: int) -> None:
        self.last_error = error

        if not error.retryable:
            self._transition(SessionState.FAILED)
            logger.info(
                "Session %s failed: %s (%s)", self.label, error.message, error.code.value
            )
            self._on_failure(error)
            return

        if attempt < self.max_attempts - 1:
            self.attempt = attempt + 1
            self._transition(SessionState.RETRY_SCHEDULED)
            logger.debug(
                "Session %s: %s, retrying (%d/%d) in %.2fs",
                self.label,
                error.kind.value,
                self.attempt + 1,
                self.max_attempts,
                self.retry_delay,
            )
            self._scheduler.call_later(self.retry_delay, self._on_retry_timer)
            return

        self._transition(SessionState.AWAITING_MANUAL_RETRY)
        log_event(
            logger,
            "retry.exhausted",
            level=logging.WARNING,
            message=(
                f"Session {self.label}: model output unusable after "
                f"{self.max_attempts} attempts ({error.kind.value})"
            ),
            session=self.label,
            attempts=self.max_attempts,
            last_error=error.code.value,
        )
        self._on_exhausted(self.manual_retry)

    def _on_retry_timer(self) -> None:
        if self.state != SessionState.RETRY_SCHEDULED:
            return
        if self._is_superseded():
            self.discard()
            return
        self._launch()


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_RETRY_DELAY",
    "RetrySession",
    "SessionState",
    "TERMINAL_STATES",
]
