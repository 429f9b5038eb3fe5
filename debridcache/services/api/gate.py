"""
Call Gate
Paces every outbound Real-Debrid call
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from debridcache.config import settings

T = TypeVar("T")


class CallGate:
    """
    Shared pacing for provider calls:
    - Concurrency limiting (Semaphore)
    - Minimum spacing between call starts
    Errors raised by the operation pass through unchanged.
    """

    def __init__(self, name: str = "real-debrid", max_concurrent: Optional[int] = None,
                 min_interval: Optional[float] = None):
        self.name = name
        self.max_concurrent = max_concurrent or settings.rd_max_concurrent
        self.min_interval = settings.rd_min_interval if min_interval is None else min_interval
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._spacing_lock: Optional[asyncio.Lock] = None
        self._next_start = 0.0

    def _primitives(self):
        # Created lazily so the gate binds to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._spacing_lock = asyncio.Lock()
        return self._semaphore, self._spacing_lock

    async def schedule(self, operation: Callable[[], Awaitable[T]]) -> T:
        semaphore, spacing_lock = self._primitives()
        async with semaphore:
            async with spacing_lock:
                now = time.monotonic()
                if now < self._next_start:
                    wait = self._next_start - now
                    logger.trace(f"[{self.name}] Pacing call, waiting {wait:.2f}s")
                    await asyncio.sleep(wait)
                self._next_start = time.monotonic() + self.min_interval
            return await operation()


# Singleton instance shared by every provider client
call_gate = CallGate()
