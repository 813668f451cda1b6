"""Bounded-parallelism gate for asynchronous work.

``limit_concurrency(n)`` returns a :class:`ConcurrencyLimiter`. Calling it with
a zero-argument callable that returns an awaitable runs that callable once a
slot is free:

    >>> limit = limit_concurrency(2)
    >>> results = await asyncio.gather(*(limit(lambda i=i: work(i)) for i in range(10)))

Guarantees:
- at most ``n`` calls are active at any time;
- calls that have to wait start in submission order (a finishing call hands
  its slot directly to the oldest waiter, so new arrivals cannot overtake);
- a call's own result or exception is returned unchanged.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

__all__ = ["ConcurrencyLimiter", "limit_concurrency"]

T = TypeVar("T")


class ConcurrencyLimiter:
    """FIFO concurrency limiter.

    Args:
        concurrency: Maximum number of concurrently active calls (>= 1).

    Raises:
        ValueError: If ``concurrency`` is less than 1.
    """

    def __init__(self, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError(f"'concurrency' must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active_count(self) -> int:
        """Number of calls currently running."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Number of calls waiting for a slot."""
        return sum(1 for w in self._waiters if not w.done())

    async def __call__(self, fn: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()
        try:
            return await fn()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._active < self._concurrency and not self._waiters:
            self._active += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            # The releasing call transfers its slot; _active is not decremented.
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1


def limit_concurrency(concurrency: int) -> ConcurrencyLimiter:
    """Create a limiter allowing ``concurrency`` simultaneous calls."""
    return ConcurrencyLimiter(concurrency)
