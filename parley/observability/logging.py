"""Structured logging and timing utilities.

Provides:
- StructuredFormatter: JSON log formatter for structured log output
- timed_operation: Context manager that logs operation timing
- log_event: Helper for structured event logging with metrics
- configure_logging: Root logger setup shared by the CLI and the API

Usage:
    from parley.observability.logging import timed_operation, log_event

    with timed_operation(logger, "suggestions.request", model="gpt-4o-mini") as ctx:
        response = await transport.post(url, headers, body)
        ctx["status_code"] = response.status_code

    log_event(logger, "parsing.matched", strategy="fenced", option_count=3)
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter.

    Outputs log records as single-line JSON with standard fields:
    timestamp, level, logger, message, plus any extra fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event"] = event_type
        metrics = getattr(record, "metrics", None)
        if metrics:
            entry["metrics"] = metrics
        metadata = getattr(record, "metadata", None)
        if metadata:
            entry["metadata"] = metadata

        if record.exc_info and record.exc_info[1]:
            entry["error"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


def _split_fields(fields: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    metrics = {
        k: v for k, v in fields.items() if isinstance(v, (int, float)) and not isinstance(v, bool)
    }
    metadata = {k: v for k, v in fields.items() if k not in metrics}
    return metrics, metadata


@contextmanager
def timed_operation(
    log: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    **extra: Any,
) -> Iterator[dict[str, Any]]:
    """Context manager that logs operation completion with timing.

    Args:
        log: Logger instance.
        operation: Operation name (e.g., "suggestions.request").
        level: Log level for completion message (start is always DEBUG).
        **extra: Additional key-value pairs included in the log.

    Yields:
        dict that can be updated with additional fields during the operation.
    """
    ctx: dict[str, Any] = {}
    start = time.perf_counter()
    log.debug(
        "%s started",
        operation,
        extra={"event_type": f"{operation}.start", "metadata": extra},
    )
    try:
        yield ctx
    except Exception:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log.log(
            level,
            "%s failed after %.1fms",
            operation,
            elapsed_ms,
            extra={
                "event_type": f"{operation}.failed",
                "metrics": {"latency_ms": round(elapsed_ms, 1)},
                "metadata": extra,
            },
        )
        raise

    elapsed_ms = (time.perf_counter() - start) * 1000
    metrics, metadata = _split_fields({**extra, **ctx})
    log.log(
        level,
        "%s completed in %.1fms",
        operation,
        elapsed_ms,
        extra={
            "event_type": f"{operation}.complete",
            "metrics": {"latency_ms": round(elapsed_ms, 1), **metrics},
            "metadata": metadata,
        },
    )


def log_event(
    log: logging.Logger,
    event_type: str,
    level: int = logging.INFO,
    message: str | None = None,
    **fields: Any,
) -> None:
    """Log a structured event with typed fields.

    Args:
        log: Logger instance.
        event_type: Event type string (e.g., "retry.exhausted").
        level: Log level.
        message: Optional human-readable message. Defaults to event_type.
        **fields: Arbitrary key-value fields. Numeric values go to metrics,
                  others go to metadata.
    """
    if not log.isEnabledFor(level):
        return
    metrics, metadata = _split_fields(fields)
    log.log(
        level,
        message or event_type,
        extra={
            "event_type": event_type,
            "metrics": metrics or None,
            "metadata": metadata or None,
        },
    )


def configure_logging(verbose: bool = False, structured: bool = False) -> None:
    """Configure the root logger for the CLI and API server.

    Args:
        verbose: DEBUG level when True, INFO otherwise.
        structured: Emit JSON lines via StructuredFormatter.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root = logging.getLogger()
    root.setLevel(level)
    # Replace existing handlers to avoid duplicate output
    root.handlers = [handler]
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
