"""FIFO concurrency limiter for generator calls."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """Admits at most ``limit`` holders at once, in arrival order.

    Waiters park on futures in a deque, so admission is strictly FIFO
    (``asyncio.Semaphore`` makes no ordering promise under contention).

    Usage:
        async with limiter:
            await generator.generate(request)
    """

    def __init__(self, limit: int = 3):
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self.active = 0
        self.peak = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> None:
        if self.active < self.limit and not self._waiters:
            self._admit()
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            await future
        except asyncio.CancelledError:
            if future in self._waiters:
                self._waiters.remove(future)
            elif future.done() and not future.cancelled():
                # Admitted and cancelled in the same tick: pass the slot on
                self.release()
            raise

    def _admit(self) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)

    def release(self) -> None:
        if self.active <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self.active -= 1
        while self._waiters and self.active < self.limit:
            future = self._waiters.popleft()
            if future.done():
                continue
            self._admit()
            future.set_result(None)

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)`` while holding a slot."""
        async with self:
            return await fn(*args, **kwargs)

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
