"""Unified exception hierarchy for Parley.

Every failure the suggestion pipeline can report is a ParleyError. Each error
carries a machine-readable ErrorCode, a coarse FailureKind used by the retry
controller, and a ``retryable`` flag.

Exception Hierarchy:
    ParleyError (base)
    +-- ConfigurationError - Missing endpoint/credential, invalid settings
    +-- NetworkError - Connectivity failures and timeouts
    +-- RateLimitedError - HTTP 429 from the model endpoint
    +-- HttpStatusError - Any other non-2xx HTTP status
    +-- ResponseFormatError - Model output unusable (retryable)
    |   +-- UnparseableResponseError - No strategy recognized the output
    |   +-- InsufficientOptionsError - Fewer than 3 options recovered
    +-- RetriesExhaustedError - Format failures used up the attempt budget
    +-- SessionStateError - Illegal retry-session transition
    +-- ValidationError - Invalid caller input

Usage:
    from parley.errors import ParleyError, RateLimitedError

    try:
        options = await service.suggest(message, sender)
    except RateLimitedError as e:
        logger.warning("Rate limited: %s (code: %s)", e.message, e.code)
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from parley.parsing import ParseOutcome


class ErrorCode(str, Enum):
    """Standard error codes for Parley errors.

    These codes are included in API error responses and AI log entries.
    """

    # Configuration errors (CFG_*)
    CFG_INVALID = "CFG_INVALID"
    CFG_MISSING = "CFG_MISSING"

    # Network errors (NET_*)
    NET_UNREACHABLE = "NET_UNREACHABLE"
    NET_TIMEOUT = "NET_TIMEOUT"

    # HTTP errors (HTTP_*)
    HTTP_RATE_LIMITED = "HTTP_RATE_LIMITED"
    HTTP_STATUS = "HTTP_STATUS"

    # Response errors (RSP_*)
    RSP_UNPARSEABLE = "RSP_UNPARSEABLE"
    RSP_INSUFFICIENT_OPTIONS = "RSP_INSUFFICIENT_OPTIONS"
    RSP_RETRIES_EXHAUSTED = "RSP_RETRIES_EXHAUSTED"

    # Session errors (SES_*)
    SES_INVALID_STATE = "SES_INVALID_STATE"
    SES_SUPERSEDED = "SES_SUPERSEDED"

    # Validation errors (VAL_*)
    VAL_INVALID_INPUT = "VAL_INVALID_INPUT"
    VAL_MISSING_REQUIRED = "VAL_MISSING_REQUIRED"

    # Generic errors
    UNKNOWN = "UNKNOWN"


class FailureKind(str, Enum):
    """Coarse failure classes that drive retry decisions."""

    CONFIG = "ConfigError"
    NETWORK = "NetworkError"
    RATE_LIMITED = "RateLimited"
    HTTP = "HttpError"
    UNPARSEABLE = "Unparseable"
    INSUFFICIENT_OPTIONS = "InsufficientOptions"
    UNKNOWN = "Unknown"


class ParleyError(Exception):
    """Base exception for all Parley errors.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code from ErrorCode enum.
        details: Optional additional context about the error.
        cause: Optional original exception that caused this error.
    """

    default_message: str = "An error occurred"
    default_code: ErrorCode = ErrorCode.UNKNOWN
    kind: ClassVar[FailureKind] = FailureKind.UNKNOWN
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a Parley error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause

        super().__init__(self.message)

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return human-readable representation."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        parts = [f"{self.__class__.__name__}({self.message!r}"]
        if self.code != self.default_code:
            parts.append(f", code={self.code.value!r}")
        if self.details:
            parts.append(f", details={self.details!r}")
        if self.cause:
            parts.append(f", cause={self.cause!r}")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses.

        Returns:
            Dictionary with error, code, kind, and detail fields.
        """
        result: dict[str, Any] = {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "kind": self.kind.value,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# Configuration Errors


class ConfigurationError(ParleyError):
    """Raised for configuration and settings issues.

    Examples:
        - Endpoint URL or API key not configured
        - Invalid configuration values
    """

    default_message = "Configuration error"
    default_code = ErrorCode.CFG_INVALID
    kind = FailureKind.CONFIG

    def __init__(
        self,
        message: str | None = None,
        *,
        config_key: str | None = None,
        config_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a configuration error.

        Args:
            message: Human-readable error message.
            config_key: The configuration key that caused the error.
            config_path: Path to the configuration file.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_path:
            details["config_path"] = config_path
        super().__init__(message, code=code, details=details, cause=cause)


# Transport Errors


class NetworkError(ParleyError):
    """Raised when the request never produced an HTTP response.

    Examples:
        - DNS failure or connection refused
        - Connect/read/write timeout
    """

    default_message = "Network request failed"
    default_code = ErrorCode.NET_UNREACHABLE
    kind = FailureKind.NETWORK

    def __init__(
        self,
        message: str | None = None,
        *,
        url: str | None = None,
        timeout: bool = False,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a network error.

        Args:
            message: Human-readable error message.
            url: The endpoint that could not be reached.
            timeout: Whether the failure was a timeout.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        if url:
            details["url"] = url
        if timeout:
            details["timeout"] = True
            code = code or ErrorCode.NET_TIMEOUT
        super().__init__(message, code=code, details=details, cause=cause)


class HttpStatusError(ParleyError):
    """Raised when the endpoint answers with a non-success HTTP status."""

    default_message = "Model endpoint returned an error status"
    default_code = ErrorCode.HTTP_STATUS
    kind = FailureKind.HTTP

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize an HTTP status error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status returned by the endpoint.
            body: Response body (truncated in details).
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        self.status_code = status_code
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body_preview"] = body[:200] + "..." if len(body) > 200 else body
        if message is None and status_code is not None:
            message = f"HTTP {status_code}"
        super().__init__(message, code=code, details=details, cause=cause)


class RateLimitedError(HttpStatusError):
    """Raised on HTTP 429.

    Kept apart from other HTTP errors so callers can apply their own backoff.
    It never consumes the automatic retry budget.
    """

    default_message = "Rate limit reached"
    default_code = ErrorCode.HTTP_RATE_LIMITED
    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str | None = None,
        *,
        body: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a rate-limit error.

        Args:
            message: Human-readable error message.
            body: Response body (truncated in details).
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        super().__init__(
            message or self.default_message,
            status_code=429,
            body=body,
            code=code,
            details=details,
            cause=cause,
        )


# Response Errors


class ResponseFormatError(ParleyError):
    """Base class for model output that could not be turned into options.

    These are attributed to the model's formatting rather than a structural
    fault, so the retry controller re-issues the request.
    """

    default_message = "Model response was not in a usable format"
    default_code = ErrorCode.RSP_UNPARSEABLE
    kind = FailureKind.UNPARSEABLE
    retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        raw_response: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a response format error.

        Args:
            message: Human-readable error message.
            raw_response: The raw model output (kept whole on the instance).
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        self.raw_response = raw_response
        super().__init__(message, code=code, details=details, cause=cause)


class UnparseableResponseError(ResponseFormatError):
    """Raised when no parsing strategy recognized the model output."""

    default_message = "Model response format was not recognized"
    default_code = ErrorCode.RSP_UNPARSEABLE
    kind = FailureKind.UNPARSEABLE


class InsufficientOptionsError(ResponseFormatError):
    """Raised when parsing recovered only one or two options."""

    default_message = "Model returned too few options"
    default_code = ErrorCode.RSP_INSUFFICIENT_OPTIONS
    kind = FailureKind.INSUFFICIENT_OPTIONS

    def __init__(
        self,
        message: str | None = None,
        *,
        count: int = 0,
        expected: int = 3,
        raw_response: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize an insufficient-options error.

        Args:
            message: Human-readable error message.
            count: Number of options actually recovered.
            expected: Minimum number of options required.
            raw_response: The raw model output.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        details["count"] = count
        details["expected"] = expected
        self.count = count
        if message is None:
            message = f"Model returned too few options: expected {expected}, got {count}"
        super().__init__(
            message, raw_response=raw_response, code=code, details=details, cause=cause
        )


class RetriesExhaustedError(ParleyError):
    """Raised when format failures consumed every automatic attempt.

    Attributes:
        retry: Zero-argument callable that restarts the session from attempt 0.
        last_error: The final format error observed.
    """

    default_message = "Model kept returning unusable output"
    default_code = ErrorCode.RSP_RETRIES_EXHAUSTED

    def __init__(
        self,
        message: str | None = None,
        *,
        attempts: int = 0,
        retry: Callable[[], Any] | None = None,
        last_error: ParleyError | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a retries-exhausted error.

        Args:
            message: Human-readable error message.
            attempts: Number of attempts made.
            retry: Manual retry handle.
            last_error: The last format error.
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        details["attempts"] = attempts
        if last_error is not None:
            details["last_error_code"] = last_error.code.value
        self.attempts = attempts
        self.retry = retry
        self.last_error = last_error
        if message is None:
            message = f"Model response format was unusable after {attempts} attempts"
        super().__init__(message, code=code, details=details, cause=cause or last_error)


class SessionStateError(ParleyError):
    """Raised when a retry session is driven through an illegal transition."""

    default_message = "Invalid retry session state"
    default_code = ErrorCode.SES_INVALID_STATE


# Validation Errors


class ValidationError(ParleyError):
    """Raised for caller input validation failures."""

    default_message = "Validation error"
    default_code = ErrorCode.VAL_INVALID_INPUT

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize a validation error.

        Args:
            message: Human-readable error message.
            field: Name of the field that failed validation.
            value: The invalid value (will be converted to string).
            code: Error code for programmatic handling.
            details: Additional context as key-value pairs.
            cause: Original exception that caused this error.
        """
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, code=code, details=details, cause=cause)


def error_from_parse_outcome(outcome: ParseOutcome, raw_response: str | None = None) -> ParleyError:
    """Build the retryable error that describes a failed parse.

    Args:
        outcome: A failed ParseOutcome.
        raw_response: The raw model output that was parsed.

    Returns:
        InsufficientOptionsError or UnparseableResponseError.

    Raises:
        ValueError: If the outcome is a success.
    """
    from parley.parsing import MIN_OPTIONS, ParseFailureReason

    if outcome.ok:
        raise ValueError("Cannot build an error from a successful parse")
    if outcome.reason == ParseFailureReason.INSUFFICIENT_OPTIONS:
        return InsufficientOptionsError(
            count=outcome.candidate_count,
            expected=MIN_OPTIONS,
            raw_response=raw_response,
        )
    return UnparseableResponseError(raw_response=raw_response)


__all__ = [
    "ConfigurationError",
    "ErrorCode",
    "FailureKind",
    "HttpStatusError",
    "InsufficientOptionsError",
    "NetworkError",
    "ParleyError",
    "RateLimitedError",
    "ResponseFormatError",
    "RetriesExhaustedError",
    "SessionStateError",
    "UnparseableResponseError",
    "ValidationError",
    "error_from_parse_outcome",
]
