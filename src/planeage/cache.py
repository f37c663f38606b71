"""In-memory TTL + LRU result cache with request coalescing.

Two instances are used at runtime: one for flight lookups keyed by
flight number and date, one for registry results keyed by N-number. Both are
process-local; nothing is shared between service instances.

Expiry is lazy: an entry past its expiry instant is dropped when it is read,
there is no background sweep. A cache hit moves the entry to the most recently
used end without extending its lifetime.

``get_or_create`` collapses concurrent requests for the same key into a single
call of the factory. The in-flight ticket is removed as soon as that call
settles, whatever the outcome, so a failure is never remembered.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def _not_none(value: object) -> bool:
    return value is not None


class ResultCache(Generic[K, V]):
    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[K, tuple[V, float]] = OrderedDict()
        self._inflight: dict[K, asyncio.Task[V]] = {}

    @property
    def enabled(self) -> bool:
        return self.max_entries > 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def get(self, key: K) -> V | None:
        """Return the live value for ``key``; ``None`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: K, value: V, ttl_seconds: float | None = None) -> None:
        """Insert or overwrite ``key``. A no-op when the cache is disabled."""
        if not self.enabled:
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (value, self._clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("cache_evicted", cache=self.name, key=str(evicted))

    def clear(self) -> None:
        self._entries.clear()

    # ------------------------------------------------------------------
    # Coalescing
    # ------------------------------------------------------------------

    def in_flight(self, key: K) -> bool:
        return key in self._inflight

    async def get_or_create(
        self,
        key: K,
        factory: Callable[[], Awaitable[V]],
        cacheable: Callable[[V], bool] = _not_none,
    ) -> V:
        """Return the cached value, join an in-flight call, or start one.

        Every caller attached to the same ticket observes the same result or
        the same exception. Only results accepted by ``cacheable`` are stored.
        """
        hit = self.get(key)
        if hit is not None:
            return hit

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, factory, cacheable))
            task.add_done_callback(self._settled)
            self._inflight[key] = task
        # One caller giving up must not cancel the shared call.
        return await asyncio.shield(task)

    async def _run(
        self,
        key: K,
        factory: Callable[[], Awaitable[V]],
        cacheable: Callable[[V], bool],
    ) -> V:
        try:
            value = await factory()
            if cacheable(value):
                self.set(key, value)
            return value
        finally:
            self._inflight.pop(key, None)

    def _settled(self, task: asyncio.Task[V]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.debug("cache_factory_failed", cache=self.name, error=repr(exc))
