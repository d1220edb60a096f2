"""Trailing-edge debouncer for asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Run an async callback once input has been quiet for `delay` seconds.

    Each call() replaces the pending timer. A callback that already started
    is left alone: only the timer is cancelled, never an in-flight request.
    Stale results from such a request are the caller's problem (see
    release_agent_core.latest).
    """

    def __init__(self, delay: float, callback: Callable[..., Awaitable[Any]]):
        self._delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    def call(self, *args: Any) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire, args)

    def _fire(self, args: tuple) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._callback(*args))
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Debounced callback failed: %s", task.exception())

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Wait for callbacks that already started."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)

    async def aclose(self) -> None:
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self.flush()
