"""Bounded-concurrency gate for registry scans.

Caps the number of simultaneously open registry streams regardless of how
many requests are in flight. Waiters are served strictly in arrival order and
a released permit is handed directly to the next waiter, so a late arrival
can never overtake a queued one.
"""

from __future__ import annotations

import asyncio
from collections import deque
from types import TracebackType


class LookupGate:
    def __init__(self, permits: int) -> None:
        if permits < 1:
            raise ValueError("permits must be >= 1")
        self._permits = permits
        self._in_use = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        if self._in_use < self._permits and not self._waiters:
            self._in_use += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The permit was handed over just before cancellation landed.
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # in_use stays the same: the permit moves to the waiter.
                waiter.set_result(None)
                return
        if self._in_use <= 0:
            raise RuntimeError("release() called without a held permit")
        self._in_use -= 1

    async def __aenter__(self) -> None:
        await self.acquire()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
