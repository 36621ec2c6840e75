"""Cancellable delayed callbacks.

The persist coordinator never touches the event loop directly; it asks a
Scheduler for a TimerHandle. Production code uses AsyncioScheduler, tests
drive a virtual clock instead.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Stop the callback from running. Safe to call more than once."""
        ...


class Scheduler(ABC):
    """Source of time and delayed callbacks, both in milliseconds."""

    @abstractmethod
    def now(self) -> float:
        ...

    @abstractmethod
    def call_later(self, delay_ms: float, callback: AsyncCallback) -> TimerHandle:
        """Run callback once after delay_ms unless the handle is cancelled."""
        ...


class _AsyncioTimerHandle(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio loop and a monotonic clock."""

    def __init__(self) -> None:
        # Spawned tasks are held here until done so they can't be collected mid-flight.
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback: AsyncCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()

        def fire() -> None:
            task = loop.create_task(callback())
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

        return _AsyncioTimerHandle(loop.call_later(max(delay_ms, 0) / 1000, fire))

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled callback failed", exc_info=task.exception())
