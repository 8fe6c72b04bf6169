"""
Event-loop timers shared by the retention scheduler and the expiry watcher.

- RepeatingTimer: calls a synchronous callback every ``interval`` seconds
  until stopped. A failing callback is logged and the timer keeps going.
- BackgroundTasks: keeps strong references to fire-and-forget tasks so
  they are not garbage collected mid-flight, and lets callers (tests, the
  worker on shutdown) wait for them.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class RepeatingTimer:
    """Fires ``callback`` every ``interval`` seconds on the running loop."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "timer") -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Arm the timer. Must be called from inside a running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception:
                logger.exception("timer_callback_failed", timer=self._name)

    async def stop(self) -> None:
        """Cancel the timer and wait until it has stopped."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class BackgroundTasks:
    """Tracks tasks spawned from timer and lifecycle callbacks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["RepeatingTimer", "BackgroundTasks"]
