"""Scheduler — cancellable periodic and one-shot asyncio tasks.

Every timer the hub runs (heartbeat, global stream, per-client streams)
is a ScheduledTask.  Cancelling a task only stops that task, and calling
cancel() more than once is harmless.  Exceptions raised by a periodic
callback are logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class ScheduledTask:
    """Handle for one scheduled callback."""

    def __init__(self, name: str, task: asyncio.Task) -> None:
        self.name = name
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()
            logger.debug("Cancelled scheduled task %s", self.name)

    async def wait(self) -> None:
        """Wait for the task to finish, swallowing its cancellation."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class Scheduler:
    """Owns every timer task so shutdown can cancel them in one place."""

    def __init__(self) -> None:
        self._tasks: dict[int, ScheduledTask] = {}

    def every(self, interval: float, callback: Callback, name: str = "interval") -> ScheduledTask:
        """Run *callback* every *interval* seconds, first run after one interval."""

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await callback()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Scheduled task %s failed", name)

        return self._spawn(name, _loop())

    def after(self, delay: float, callback: Callback, name: str = "timeout") -> ScheduledTask:
        """Run *callback* once after *delay* seconds."""

        async def _once() -> None:
            await asyncio.sleep(delay)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled task %s failed", name)

        return self._spawn(name, _once())

    def cancel_all(self) -> int:
        count = 0
        for handle in list(self._tasks.values()):
            if not handle.done:
                handle.cancel()
                count += 1
        self._tasks.clear()
        return count

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done)

    def _spawn(self, name: str, coro) -> ScheduledTask:
        task = asyncio.create_task(coro, name=name)
        handle = ScheduledTask(name, task)
        key = id(task)
        self._tasks[key] = handle
        task.add_done_callback(lambda _t: self._tasks.pop(key, None))
        return handle
