"""Unit tests for AsyncioScheduler."""

import asyncio
import logging

import pytest

from parley.scheduling import AsyncioScheduler


class TestAsyncioScheduler:
    """Tests for task spawning and deferred callbacks."""

    @pytest.mark.asyncio
    async def test_spawn_runs_coroutine(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()

        async def work():
            done.set()

        scheduler.spawn(work())
        assert scheduler.pending_tasks == 1

        await asyncio.wait_for(done.wait(), timeout=1)
        await asyncio.sleep(0)
        assert scheduler.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_task_exception_is_logged(self, caplog):
        scheduler = AsyncioScheduler()

        async def fail():
            raise RuntimeError("boom")

        with caplog.at_level(logging.WARNING, logger="parley.scheduling"):
            scheduler.spawn(fail())
            for _ in range(3):
                await asyncio.sleep(0)

        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_call_later(self):
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()

        scheduler.call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1)
