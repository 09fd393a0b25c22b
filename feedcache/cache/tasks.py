"""
Background Task Supervisor

Fire-and-forget work (stale revalidations) is spawned here instead of as
bare asyncio.create_task calls, so that:
- a strong reference is held until the task finishes
- every exception is logged in one place and never re-raised
- shutdown can drain or cancel what is still running
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set


logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Owns fire-and-forget coroutines for the lifetime of the application."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.spawned = 0
        self.failed = 0

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        self.spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Background task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                f"Background task {task.get_name()} failed: {exc!r}",
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait until every spawned task (including ones spawned meanwhile) is done."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        # let done callbacks run
        await asyncio.sleep(0)

    async def close(self):
        """Cancel outstanding tasks. Call on application shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} background tasks on shutdown")
        self._tasks.clear()
