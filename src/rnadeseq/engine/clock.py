# src/rnadeseq/engine/clock.py
"""Clock abstraction for stage and run durations.

Production code uses SystemClock (the default). Tests inject MockClock so
reported durations are deterministic.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract monotonic clock."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds (never goes backwards)."""
        ...


class SystemClock:
    """Production clock using time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(start=0.0)
        executor = StageExecutor(context, runner, clock=clock)
        clock.advance(5.0)
    """

    def __init__(self, start: float = 0.0, *, step: float = 0.0) -> None:
        """Initialize mock clock at a given time.

        Args:
            start: Initial monotonic time value
            step: Seconds added automatically after every read, so code that
                measures ``end - start`` sees a non-zero duration
        """
        if step < 0:
            raise ValueError(f"step must be non-negative, got {step}")
        self._current = start
        self._step = step

    def monotonic(self) -> float:
        value = self._current
        self._current += self._step
        return value

    def advance(self, seconds: float) -> None:
        """Advance mock time by ``seconds``.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds


DEFAULT_CLOCK: Clock = SystemClock()
