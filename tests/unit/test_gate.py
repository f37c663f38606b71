"""Unit tests for planeage.gate."""

from __future__ import annotations

import asyncio

import pytest

from planeage.gate import LookupGate


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestLookupGate:
    def test_rejects_zero_permits(self) -> None:
        with pytest.raises(ValueError):
            LookupGate(0)

    async def test_acquire_within_capacity_is_immediate(self) -> None:
        gate = LookupGate(2)
        await gate.acquire()
        await gate.acquire()
        assert gate.in_use == 2
        assert gate.waiting == 0

    async def test_excess_callers_wait(self) -> None:
        gate = LookupGate(1)
        await gate.acquire()
        waiter = asyncio.create_task(gate.acquire())
        await _settle()
        assert not waiter.done()
        assert gate.waiting == 1

        gate.release()
        await _settle()
        assert waiter.done()
        assert gate.in_use == 1

    async def test_waiters_resume_in_arrival_order(self) -> None:
        gate = LookupGate(1)
        order: list[int] = []

        async def worker(i: int) -> None:
            async with gate:
                order.append(i)
                await asyncio.sleep(0)

        await gate.acquire()
        tasks = []
        for i in range(5):
            tasks.append(asyncio.create_task(worker(i)))
            await asyncio.sleep(0)
        gate.release()
        await asyncio.gather(*tasks)
        assert order == [0, 1, 2, 3, 4]
        assert gate.in_use == 0

    async def test_never_exceeds_permits(self) -> None:
        gate = LookupGate(3)
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with gate:
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(20)))
        assert peak == 3
        assert gate.in_use == 0

    async def test_release_hands_permit_to_waiter(self) -> None:
        """A new arrival cannot jump ahead of a queued waiter."""
        gate = LookupGate(1)
        await gate.acquire()
        queued = asyncio.create_task(gate.acquire())
        await _settle()

        gate.release()
        late = asyncio.create_task(gate.acquire())
        await _settle()

        assert queued.done()
        assert not late.done()
        late.cancel()
        await asyncio.gather(late, return_exceptions=True)

    async def test_cancelled_waiter_leaves_queue(self) -> None:
        gate = LookupGate(1)
        await gate.acquire()
        waiter = asyncio.create_task(gate.acquire())
        await _settle()

        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        assert gate.waiting == 0

        gate.release()
        assert gate.in_use == 0

    async def test_release_without_permit_raises(self) -> None:
        gate = LookupGate(1)
        with pytest.raises(RuntimeError):
            gate.release()

    async def test_permit_released_on_exception(self) -> None:
        gate = LookupGate(1)
        with pytest.raises(KeyError):
            async with gate:
                raise KeyError("boom")
        assert gate.in_use == 0
