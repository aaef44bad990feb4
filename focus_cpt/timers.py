"""Absolute-deadline timers pumped from a single-threaded frame loop.

Nothing here sleeps. A driver (the pygame shell or a test) calls
``FrameTimerLoop.run_due()`` as often as it can; every callback whose deadline
has passed fires in deadline order, however late the pump was.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

from .clock import Clock


class TimerHandle:
    __slots__ = ("deadline_ns", "_callback", "_cancelled")

    def __init__(self, deadline_ns: int, callback: Callable[[], None]) -> None:
        self.deadline_ns = int(deadline_ns)
        self._callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def _run(self) -> None:
        if not self._cancelled:
            self._callback()


class TimerLoop(Protocol):
    def call_at(self, deadline_ns: int, callback: Callable[[], None]) -> TimerHandle: ...


class FrameTimerLoop:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._heap: list[tuple[int, int, TimerHandle]] = []
        self._seq = itertools.count()

    def call_at(self, deadline_ns: int, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(deadline_ns, callback)
        heapq.heappush(self._heap, (handle.deadline_ns, next(self._seq), handle))
        return handle

    def run_due(self, now_ns: int | None = None) -> int:
        """Fire all due timers. Returns the number of callbacks run."""

        now = self._clock.now_ns() if now_ns is None else int(now_ns)
        fired = 0
        # Callbacks may push new timers that are already due; keep draining.
        while self._heap and self._heap[0][0] <= now:
            _, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            handle._run()
            fired += 1
        return fired

    def pending(self) -> int:
        return sum(1 for _, _, h in self._heap if not h.cancelled)

    def next_deadline_ns(self) -> int | None:
        for deadline, _, handle in sorted(self._heap):
            if not handle.cancelled:
                return deadline
        return None

    def clear(self) -> None:
        for _, _, handle in self._heap:
            handle.cancel()
        self._heap.clear()
