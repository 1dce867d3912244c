"""asyncio implementation of contracts.transport.Scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


def log_task_exception(task: asyncio.Task[Any], msg: str = "Background task failed") -> None:
    """Callback for add_done_callback to log task exceptions."""
    try:
        if not task.cancelled():
            task.result()
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("%s: %s", msg, e, exc_info=True)


class AsyncioScheduler:
    """Runs attempts as tasks on an event loop and defers retries with call_later.

    Args:
        loop: Loop to schedule on. Defaults to the running loop at call time.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        # Strong references; the loop only keeps weak ones
        self._tasks: set[asyncio.Task[Any]] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = self._get_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self._get_loop().call_later(delay, callback)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)
