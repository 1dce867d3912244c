"""Shared test doubles and canned model responses."""

from __future__ import annotations

import json
from collections.abc import Callable, Coroutine
from typing import Any

from contracts.transport import TransportResponse


def chat_completion(content: str) -> str:
    """Wrap ``content`` in a chat-completions response envelope."""
    return json.dumps(
        {
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ],
        }
    )


GOOD_CONTENT = '{"options": ["Sounds good!", "What time?", "Can\'t make it, sorry"]}'
GOOD_RESPONSE = chat_completion(GOOD_CONTENT)
BAD_RESPONSE = chat_completion("I'm not sure what you mean.")


class ManualScheduler:
    """Scheduler double that runs nothing until told to.

    Spawned coroutines and deferred callbacks are queued. ``run_pending``
    awaits queued coroutines; ``fire_timers`` invokes deferred callbacks.
    """

    def __init__(self) -> None:
        self.coroutines: list[Coroutine[Any, Any, None]] = []
        self.timers: list[tuple[float, Callable[[], None]]] = []
        self.spawned = 0
        self.delays: list[float] = []

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        self.spawned += 1
        self.coroutines.append(coro)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self.delays.append(delay)
        self.timers.append((delay, callback))

    async def run_pending(self) -> None:
        while self.coroutines:
            coro = self.coroutines.pop(0)
            await coro

    def fire_timers(self) -> int:
        fired = 0
        while self.timers:
            _, callback = self.timers.pop(0)
            callback()
            fired += 1
        return fired

    async def run_until_idle(self) -> None:
        """Alternate attempts and timers until nothing is queued."""
        while self.coroutines or self.timers:
            await self.run_pending()
            self.fire_timers()

    def close(self) -> None:
        for coro in self.coroutines:
            coro.close()
        self.coroutines.clear()


class FakeTransport:
    """Transport double returning scripted responses.

    Each item is a TransportResponse, a ``(status, text)`` tuple, a plain
    string (treated as a 200 body), or an exception to raise. The last item
    repeats once the script runs out.
    """

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def post(
        self, url: str, headers: dict[str, str], body: dict[str, Any]
    ) -> TransportResponse:
        self.calls.append({"url": url, "headers": headers, "body": body})
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, TransportResponse):
            return item
        if isinstance(item, tuple):
            return TransportResponse(status_code=item[0], text=item[1])
        return TransportResponse(status_code=200, text=item)


