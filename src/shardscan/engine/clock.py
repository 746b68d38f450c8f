# src/shardscan/engine/clock.py
"""Time source for per-execution and per-page deadlines.

deadline_scope() reads the clock once when a scope opens and again at
every store call, so only monotonic time is needed: wall-clock jumps
must not expire or extend a deadline.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float:
        """Seconds since an arbitrary fixed point; never goes backwards."""
        ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Clock that only moves when told to.

    Lets tests expire a deadline between two store calls without sleeping:

        clock = MockClock()
        with deadline_scope(1.0, clock=clock):
            clock.advance(1.5)
            check_deadline()  # DeadlineExceededError
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"monotonic time cannot move backwards (advance by {seconds})")
        self._now += seconds


DEFAULT_CLOCK: Clock = SystemClock()
