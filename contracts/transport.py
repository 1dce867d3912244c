"""Transport and scheduling interfaces.

The suggestion pipeline never talks to the network or the event loop directly.
It codes against these protocols so sessions can be driven by real HTTP and
asyncio in production and by in-memory doubles in tests.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP outcome of a completed request.

    Attributes:
        status_code: HTTP status code.
        text: Response body decoded as text.
    """

    status_code: int
    text: str

    @property
    def is_success(self) -> bool:
        """True for 2xx responses."""
        return 200 <= self.status_code < 300


class Transport(Protocol):
    """Interface for posting a JSON document to the model endpoint."""

    async def post(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
    ) -> TransportResponse:
        """POST ``body`` as JSON.

        Args:
            url: Endpoint URL.
            headers: Request headers (including the bearer credential).
            body: JSON-serializable request document.

        Returns:
            The response status and body text, for any HTTP status.

        Raises:
            parley.errors.NetworkError: On connectivity failures or timeouts.
        """
        ...


class Scheduler(Protocol):
    """Interface for running attempts and deferring retries."""

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a coroutine in the background."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` once after ``delay`` seconds without blocking."""
        ...
