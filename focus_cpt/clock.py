from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic high-resolution clock abstraction.

    Timing and scoring code depends on this interface rather than calling real
    time directly, so every run can be replayed against a fake clock.
    """

    def now_ns(self) -> int:
        """Return monotonic nanoseconds since an arbitrary epoch."""


class RealClock:
    """Production clock backed by time.perf_counter_ns()."""

    def now_ns(self) -> int:
        return time.perf_counter_ns()
