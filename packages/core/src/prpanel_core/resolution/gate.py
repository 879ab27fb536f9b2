"""Bounded concurrency for GitHub mutation calls."""

from __future__ import annotations

import asyncio
from collections import deque


class MutationGate:
    """Counting semaphore with FIFO hand-off.

    At most ``limit`` holders at a time. ``release`` passes the slot straight
    to the oldest waiter, so a newcomer can never overtake a queued caller.
    """

    def __init__(self, limit: int = 5):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._in_flight = 0
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        if self._in_flight < self._limit and not self.waiting:
            self._in_flight += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.cancelled():
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            else:
                # The slot was handed over just before cancellation; pass it on.
                self.release()
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        if self._in_flight <= 0:
            raise RuntimeError("MutationGate released more times than acquired")
        self._in_flight -= 1

    async def __aenter__(self) -> MutationGate:
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
