"""
Bounded fixed-interval polling with cooperative cancellation.

Waits happen on a ``threading.Event`` so that a caller holding the event can
interrupt a poll immediately instead of waiting out the remaining interval.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    """Configuration for a bounded poll."""

    interval: float = 1.0
    timeout: float = 60.0
    immediate: bool = True

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be > 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.interval > self.timeout:
            raise ValueError("interval must be <= timeout")


class PollTimeoutError(TimeoutError):
    """Raised when the condition is not met before the policy timeout."""

    def __init__(self, timeout: float, attempts: int) -> None:
        super().__init__(f"condition not met within {timeout:g}s after {attempts} attempts")
        self.timeout = timeout
        self.attempts = attempts


class PollCancelledError(RuntimeError):
    """Raised when the cancel event is set while polling."""


def poll_until(
    condition: Callable[[], Optional[T]],
    policy: PollPolicy,
    *,
    cancel: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``condition`` until it returns a non-``None`` value.

    Exceptions raised by ``condition`` abort the poll and propagate unchanged.
    """
    event = cancel if cancel is not None else threading.Event()
    deadline = clock() + policy.timeout
    attempts = 0

    if not policy.immediate:
        if event.wait(policy.interval):
            raise PollCancelledError("poll cancelled before first attempt")

    while True:
        if event.is_set():
            raise PollCancelledError(f"poll cancelled after {attempts} attempts")
        attempts += 1
        result = condition()
        if result is not None:
            return result

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(policy.timeout, attempts)
        if event.wait(min(policy.interval, remaining)):
            raise PollCancelledError(f"poll cancelled after {attempts} attempts")


__all__ = ["PollPolicy", "PollTimeoutError", "PollCancelledError", "poll_until"]
