"""Unit-specific fixtures (no I/O beyond tmp_path files)."""

from __future__ import annotations

import pytest

from planeage.gate import LookupGate


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def gate() -> LookupGate:
    return LookupGate(2)
