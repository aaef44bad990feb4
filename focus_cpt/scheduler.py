"""Drift-corrected trial scheduler.

Every deadline is computed from one absolute anchor::

    base      = start + buffer
    onset(i)  = base + i * period
    offset(i) = onset(i) + stimulus_duration
    complete  = base + n * period

and the next timer is always armed for the next deadline on that grid, never
"one period after the callback that just ran". A late callback therefore
delays only itself; it cannot push later trials back.

Each ``start()`` bumps a generation counter that every armed timer captures.
A callback from an older generation (already queued when ``stop()`` ran) is
ignored rather than raced against with locks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from .classifier import ANTICIPATORY_THRESHOLD_MS, LiveCounts, ResponseClassification, ResponseClassifier
from .clock import Clock
from .config import CptConfig
from .errors import ConfigError, TimingError
from .timers import TimerHandle, TimerLoop
from .trials import StimulusType, TestComplete, TrialEvent, TrialEventType

logger = logging.getLogger(__name__)


class SchedulerState(StrEnum):
    IDLE = "idle"
    BUFFER = "buffer"
    STIMULUS_VISIBLE = "stimulus_visible"
    INTER_TRIAL_GAP = "inter_trial_gap"
    COMPLETED = "completed"
    STOPPED = "stopped"


_RUNNING_STATES = frozenset(
    {SchedulerState.BUFFER, SchedulerState.STIMULUS_VISIBLE, SchedulerState.INTER_TRIAL_GAP}
)


class TrialEventListener(Protocol):
    def on_trial_event(self, event: TrialEvent) -> None: ...

    def on_test_complete(self, result: TestComplete) -> None: ...


@dataclass(slots=True)
class _Session:
    generation: int
    sequence: tuple[StimulusType, ...]
    start_ns: int
    base_ns: int
    period_ns: int
    stimulus_ns: int
    events: list[TrialEvent] = field(default_factory=list)
    # Even steps are onsets, odd steps offsets, step 2n is completion.
    step: int = 0
    handle: TimerHandle | None = None

    @property
    def final_step(self) -> int:
        return 2 * len(self.sequence)

    def deadline_ns(self, step: int) -> int:
        trial, is_offset = divmod(step, 2)
        onset = self.base_ns + trial * self.period_ns
        return onset + self.stimulus_ns if is_offset else onset

    def trial_at(self, timestamp_ns: int) -> int:
        """Index of the trial whose response window contains the timestamp (0 during the buffer)."""

        if timestamp_ns < self.base_ns:
            return 0
        return min((timestamp_ns - self.base_ns) // self.period_ns, len(self.sequence) - 1)


class Scheduler:
    def __init__(
        self,
        *,
        config: CptConfig,
        clock: Clock,
        timers: TimerLoop,
        classifier: ResponseClassifier | None = None,
        anticipatory_threshold_ms: float = ANTICIPATORY_THRESHOLD_MS,
    ) -> None:
        self._config = config
        self._clock = clock
        self._timers = timers
        self._classifier = (
            classifier
            if classifier is not None
            else ResponseClassifier(anticipatory_threshold_ms=anticipatory_threshold_ms)
        )

        self._state = SchedulerState.IDLE
        self._generation = 0
        self._session: _Session | None = None
        self._current_trial = -1
        self._last_events: tuple[TrialEvent, ...] = ()
        self._listeners: list[TrialEventListener] = []

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def config(self) -> CptConfig:
        return self._config

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: TrialEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_running(self) -> bool:
        return self._state in _RUNNING_STATES

    def get_current_trial_index(self) -> int:
        return self._current_trial

    def events(self) -> tuple[TrialEvent, ...]:
        if self._session is not None:
            return tuple(self._session.events)
        return self._last_events

    def live_counts(self) -> LiveCounts:
        return self._classifier.counts()

    def start(self, sequence: Sequence[StimulusType], start_time_ns: int | None = None) -> None:
        if self.is_running():
            raise TimingError("scheduler is already running; stop() it first")
        if len(sequence) == 0:
            raise ConfigError("sequence must contain at least one trial")

        start_ns = self._clock.now_ns() if start_time_ns is None else int(start_time_ns)
        self._generation += 1
        self._classifier.clear()
        self._current_trial = -1
        self._last_events = ()
        self._session = _Session(
            generation=self._generation,
            sequence=tuple(StimulusType(s) for s in sequence),
            start_ns=start_ns,
            base_ns=start_ns + self._config.buffer_ns,
            period_ns=self._config.period_ns,
            stimulus_ns=self._config.stimulus_duration_ns,
        )
        self._state = SchedulerState.BUFFER
        logger.info(
            "session %d started: %d trials, period %.1f ms",
            self._generation,
            len(sequence),
            self._config.period_ms,
        )
        try:
            self._emit(
                TrialEvent(
                    trial_index=0,
                    stimulus_type=self._session.sequence[0],
                    event_type=TrialEventType.BUFFER_START,
                    timestamp_ns=start_ns,
                )
            )
        finally:
            self._arm()

    def stop(self) -> TestComplete | None:
        """Cancel the run. Safe in any state; returns the partial log if one was running."""

        if not self.is_running():
            return None
        session = self._session
        assert session is not None

        # Invalidate anything already queued before touching state.
        self._generation += 1
        if session.handle is not None:
            session.handle.cancel()
            session.handle = None
        self._classifier.close_window()
        self._state = SchedulerState.STOPPED

        result = TestComplete(
            events=tuple(session.events),
            elapsed_time_ns=max(0, self._clock.now_ns() - session.start_ns),
            aborted=True,
        )
        self._teardown(session)
        logger.info("session stopped after %d trials", self._current_trial + 1)
        self._notify_complete(result)
        return result

    def record_response(self, timestamp_ns: int | None = None) -> ResponseClassification | None:
        if self._state is SchedulerState.IDLE:
            raise TimingError("record_response() called before any session was started")
        if not self.is_running():
            logger.debug("response after session end discarded")
            return None

        session = self._session
        assert session is not None
        ts = self._clock.now_ns() if timestamp_ns is None else int(timestamp_ns)

        # A boundary whose deadline has passed wins over a response stamped after it.
        self._catch_up(ts)
        if not self.is_running():
            logger.debug("response at %d ns arrived after completion; discarded", ts)
            return None

        classification = self._classifier.record_response(ts)
        if classification is None:
            # Still logged; reconstruction assigns it by timestamp.
            trial = session.trial_at(ts)
            stimulus = session.sequence[trial]
            logger.debug("response at %d ns outside the live window; logged against trial %d", ts, trial)
            self._emit(
                TrialEvent(
                    trial_index=trial,
                    stimulus_type=stimulus,
                    event_type=TrialEventType.RESPONSE,
                    timestamp_ns=ts,
                    response_correct=stimulus is StimulusType.TARGET,
                )
            )
            return None

        self._emit(
            TrialEvent(
                trial_index=classification.trial_index,
                stimulus_type=session.sequence[classification.trial_index],
                event_type=TrialEventType.RESPONSE,
                timestamp_ns=ts,
                response_correct=classification.expected_response,
            )
        )
        return classification

    def _arm(self) -> None:
        session = self._session
        assert session is not None
        generation = session.generation
        step = session.step
        session.handle = self._timers.call_at(
            session.deadline_ns(step),
            lambda: self._on_timer(generation, step),
        )

    def _on_timer(self, generation: int, step: int) -> None:
        session = self._session
        if generation != self._generation or session is None or session.step != step:
            logger.debug("stale timer ignored (generation %d, step %d)", generation, step)
            return
        session.handle = None
        try:
            self._fire_step()
        finally:
            self._rearm(session)

    def _catch_up(self, now_ns: int) -> None:
        session = self._session
        if session is None:
            return
        try:
            while self.is_running() and session.deadline_ns(session.step) <= now_ns:
                if session.handle is not None:
                    session.handle.cancel()
                    session.handle = None
                self._fire_step()
        finally:
            self._rearm(session)

    def _rearm(self, session: _Session) -> None:
        # A raising listener must not leave a running session without a timer.
        if self.is_running() and self._session is session and session.handle is None:
            self._arm()

    def _fire_step(self) -> None:
        session = self._session
        assert session is not None
        step = session.step
        if step >= session.final_step:
            self._complete(session)
            return

        trial, is_offset = divmod(step, 2)
        stimulus = session.sequence[trial]
        deadline = session.deadline_ns(step)
        session.step += 1

        if is_offset:
            self._state = SchedulerState.INTER_TRIAL_GAP
            event_type = TrialEventType.STIMULUS_OFFSET
        else:
            self._classifier.open_window(trial, deadline, expected_response=stimulus is StimulusType.TARGET)
            self._current_trial = trial
            self._state = SchedulerState.STIMULUS_VISIBLE
            event_type = TrialEventType.STIMULUS_ONSET

        self._emit(
            TrialEvent(
                trial_index=trial,
                stimulus_type=stimulus,
                event_type=event_type,
                timestamp_ns=deadline,
            )
        )

    def _complete(self, session: _Session) -> None:
        self._classifier.close_window()
        self._state = SchedulerState.COMPLETED
        result = TestComplete(
            events=tuple(session.events),
            elapsed_time_ns=max(0, self._clock.now_ns() - session.start_ns),
            aborted=False,
        )
        self._teardown(session)
        logger.info(
            "session completed: %d trials in %.3f s",
            len(session.sequence),
            result.elapsed_time_ns / 1e9,
        )
        self._notify_complete(result)

    def _teardown(self, session: _Session) -> None:
        self._last_events = tuple(session.events)
        self._session = None

    def _emit(self, event: TrialEvent) -> None:
        session = self._session
        assert session is not None
        session.events.append(event)
        for listener in list(self._listeners):
            listener.on_trial_event(event)

    def _notify_complete(self, result: TestComplete) -> None:
        for listener in list(self._listeners):
            listener.on_test_complete(result)
