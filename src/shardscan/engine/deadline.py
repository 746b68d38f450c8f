# src/shardscan/engine/deadline.py
"""Per-unit deadlines for storage calls.

Each execution (targeted scan) and each listing page (range scan) runs
inside its own deadline_scope(). Stores call check_deadline() before
issuing a query; the retryer stops retrying once the deadline passed.
There is no scan-wide deadline.

The active deadline lives in a ContextVar, so nested scopes and
independent scanners in separate threads do not interfere.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from shardscan.contracts.errors import DeadlineExceededError
from shardscan.engine.clock import DEFAULT_CLOCK, Clock


@dataclass(frozen=True, slots=True)
class Deadline:
    """A point in monotonic time after which work must stop."""

    expires_at: float
    timeout_seconds: float
    clock: Clock

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - self.clock.monotonic())

    def expired(self) -> bool:
        return self.clock.monotonic() >= self.expires_at

    def check(self) -> None:
        """Raise DeadlineExceededError if the deadline has passed."""
        if self.expired():
            raise DeadlineExceededError(self.timeout_seconds)


_current_deadline: ContextVar[Deadline | None] = ContextVar("shardscan_deadline", default=None)


@contextmanager
def deadline_scope(timeout_seconds: float, *, clock: Clock = DEFAULT_CLOCK) -> Iterator[Deadline]:
    """Bind a deadline to the enclosed block.

    A nested scope never extends an enclosing one: the earlier expiry wins.
    """
    if timeout_seconds <= 0:
        raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")
    deadline = Deadline(clock.monotonic() + timeout_seconds, timeout_seconds, clock)
    outer = _current_deadline.get()
    if outer is not None and outer.expires_at < deadline.expires_at:
        deadline = outer
    token = _current_deadline.set(deadline)
    try:
        yield deadline
    finally:
        _current_deadline.reset(token)


def current_deadline() -> Deadline | None:
    """The deadline bound to the current context, if any."""
    return _current_deadline.get()


def check_deadline() -> None:
    """Raise DeadlineExceededError if the active deadline has passed."""
    deadline = _current_deadline.get()
    if deadline is not None:
        deadline.check()
