# src/botwright/engine/clock.py
"""Clock abstraction for testable backoff logic.

The repair orchestrator sleeps between compiler resubmissions. Production
code uses SystemClock; tests inject MockClock so a 30-second rate-limit
pause takes no wall time and can be asserted on.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for backoff and timing.

    Implementations:
    - SystemClock: time.monotonic() and time.sleep() (production)
    - MockClock: controllable time, sleep() advances it (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        ...


class SystemClock:
    """Production clock using the system monotonic clock."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class MockClock:
    """Controllable clock for deterministic testing.

    sleep() returns immediately, advances the clock and records the
    requested duration.

    Example:
        clock = MockClock()
        orchestrator = RepairOrchestrator(compiler, patcher, clock=clock)
        orchestrator.run(csv_text, bot_id="Acme.Bot", credential="k")
        assert clock.sleeps == [30.0]
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Advance time.

        Raises:
            ValueError: If seconds is negative
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {seconds}")
        self._current += seconds

    def set(self, value: float) -> None:
        """Set absolute time.

        Raises:
            ValueError: If value would move time backwards
        """
        if value < self._current:
            raise ValueError(f"Cannot move clock backwards from {self._current} to {value}")
        self._current = value


DEFAULT_CLOCK: Clock = SystemClock()
