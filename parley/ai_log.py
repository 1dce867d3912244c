"""In-memory log of model requests for troubleshooting.

Records one entry per notable request outcome (successes, configuration and
transport failures, unusable model output) so a user can see why suggestions
did not appear without turning on debug logging. Entries are kept in a bounded
ring; the oldest are dropped first.

Usage:
    from parley.ai_log import get_ai_log

    get_ai_log().record_error("openai", "gpt-4o-mini", url, "HTTP 500: ...")
    print(get_ai_log().render())
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Literal

DEFAULT_MAX_ENTRIES = 200

LogLevel = Literal["success", "error"]


@dataclass(frozen=True)
class AiLogEntry:
    """A single recorded request outcome."""

    timestamp: datetime
    level: LogLevel
    provider: str
    model: str
    url: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat(timespec="seconds")
        return data

    def render(self) -> str:
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        marker = "OK" if self.level == "success" else "ERROR"
        header = f"[{stamp}] {marker} {self.provider} / {self.model}"
        if self.url:
            header += f" @ {self.url}"
        return f"{header}\n{self.message}"


class AiLog:
    """Thread-safe bounded ring of AiLogEntry records."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: deque[AiLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or DEFAULT_MAX_ENTRIES

    def _append(self, level: LogLevel, provider: str, model: str, url: str, message: str) -> None:
        entry = AiLogEntry(
            timestamp=datetime.now(),
            level=level,
            provider=provider,
            model=model,
            url=url,
            message=message,
        )
        with self._lock:
            self._entries.append(entry)

    def record_success(self, provider: str, model: str, message_preview: str, option_count: int) -> None:
        preview = message_preview[:50] + "..." if len(message_preview) > 50 else message_preview
        self._append(
            "success", provider, model, "", f"Generated {option_count} options for: {preview}"
        )

    def record_error(self, provider: str, model: str, url: str, message: str) -> None:
        self._append("error", provider, model, url, message)

    def entries(self) -> list[AiLogEntry]:
        """Snapshot of entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def render(self) -> str:
        return "\n\n".join(entry.render() for entry in self.entries())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_ai_log: AiLog | None = None
_ai_log_lock = threading.Lock()


def get_ai_log() -> AiLog:
    """Get the process-wide AI log, sized from configuration on first use."""
    global _ai_log
    if _ai_log is None:
        with _ai_log_lock:
            if _ai_log is None:
                from parley.config import get_config

                _ai_log = AiLog(get_config().logging.ai_log_max_entries)
    return _ai_log


def reset_ai_log() -> None:
    """Reset the singleton (for testing)."""
    global _ai_log
    with _ai_log_lock:
        _ai_log = None
