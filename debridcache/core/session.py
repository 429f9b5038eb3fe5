"""
Search Session
Per-search cancellation. Starting a new search cancels the producer calls
still running for the previous one.
"""
import asyncio
from typing import Awaitable, Optional, Set

from loguru import logger


class CancellationToken:
    """Cancellation signal shared by the producer calls of one search"""

    def __init__(self):
        self._event = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def track(self, coro: Awaitable, name: str = "producer") -> asyncio.Task:
        """Run a coroutine as a task that is cancelled with this token"""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if self.cancelled:
            task.cancel()
        return task

    def cancel(self):
        if self.cancelled:
            return
        self._event.set()
        for task in list(self._tasks):
            task.cancel()


class SearchSession:
    """Holds the single live cancellation token"""

    def __init__(self):
        self._current: Optional[CancellationToken] = None

    @property
    def current(self) -> Optional[CancellationToken]:
        return self._current

    def begin(self) -> CancellationToken:
        """Cancel the previous search's producers and issue a fresh token"""
        if self._current is not None and not self._current.cancelled:
            logger.debug("Cancelling producers of the previous search")
            self._current.cancel()
        self._current = CancellationToken()
        return self._current

    def cancel_previous(self):
        if self._current is not None:
            self._current.cancel()

    def finish(self, token: CancellationToken):
        if self._current is token:
            self._current = None


# Singleton instance
search_session = SearchSession()
