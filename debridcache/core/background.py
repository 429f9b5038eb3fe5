"""
Background Tasks
Fire-and-forget work (cache upserts, provider cleanup) decoupled from the
request path. Failures are logged, never surfaced.
"""
import asyncio
from typing import Awaitable, Optional, Set

from loguru import logger


class BackgroundTasks:
    """Bounded pool of asyncio tasks with an error-logging sink"""

    def __init__(self, max_concurrent: int = 4):
        self.max_concurrent = max_concurrent
        self._tasks: Set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, coro: Awaitable):
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        async with self._semaphore:
            # Let the current unit of work finish first
            await asyncio.sleep(0)
            return await coro

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task {task.get_name()} failed: {error}")

    def spawn(self, coro: Awaitable, name: str = "background") -> asyncio.Task:
        """Schedule a coroutine without awaiting it"""
        task = asyncio.get_running_loop().create_task(self._run(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self):
        """Wait for everything currently scheduled (shutdown and tests)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Singleton instance
background_tasks = BackgroundTasks()
