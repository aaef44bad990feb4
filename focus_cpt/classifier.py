"""Live response classification for immediate feedback during a run.

The classifier owns at most one open response window. The window for trial i
opens at its stimulus onset and stays open until the onset of trial i + 1 (or
the end of the session), i.e. the whole inter-stimulus period.

Outcomes computed here are never used for scoring. Reconstruction replays the
event log with the same rules and is authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass

from .trials import StimulusType, TrialOutcome

ANTICIPATORY_THRESHOLD_MS = 150.0


@dataclass(slots=True)
class PendingResponse:
    trial_index: int
    onset_timestamp_ns: int
    expected_response: bool
    response_count: int = 0
    first_response_time_ms: float | None = None
    is_anticipatory: bool = False

    @property
    def stimulus_type(self) -> StimulusType:
        return StimulusType.TARGET if self.expected_response else StimulusType.NON_TARGET

    @property
    def outcome(self) -> TrialOutcome:
        if self.response_count == 0:
            return TrialOutcome.OMISSION if self.expected_response else TrialOutcome.CORRECT_REJECTION
        return TrialOutcome.HIT if self.expected_response else TrialOutcome.COMMISSION


@dataclass(frozen=True, slots=True)
class ResponseClassification:
    trial_index: int
    outcome: TrialOutcome
    response_time_ms: float
    is_anticipatory: bool
    is_multiple_response: bool
    expected_response: bool


@dataclass(frozen=True, slots=True)
class LiveCounts:
    hits: int = 0
    omissions: int = 0
    commissions: int = 0
    correct_rejections: int = 0
    anticipatory: int = 0
    multiple_responses: int = 0
    responses: int = 0


class ResponseClassifier:
    def __init__(self, *, anticipatory_threshold_ms: float = ANTICIPATORY_THRESHOLD_MS) -> None:
        self._threshold_ms = float(anticipatory_threshold_ms)
        self._pending: PendingResponse | None = None
        # Kept only so an out-of-order response can still amend it.
        self._last_closed: PendingResponse | None = None
        self._counts: dict[TrialOutcome, int] = {}
        self._anticipatory = 0
        self._multiple = 0
        self._responses = 0

    @property
    def pending(self) -> PendingResponse | None:
        return self._pending

    def clear(self) -> None:
        self._pending = None
        self._last_closed = None
        self._counts = {o: 0 for o in TrialOutcome}
        self._anticipatory = 0
        self._multiple = 0
        self._responses = 0

    def open_window(self, trial_index: int, onset_timestamp_ns: int, *, expected_response: bool) -> None:
        self.close_window()
        self._pending = PendingResponse(
            trial_index=int(trial_index),
            onset_timestamp_ns=int(onset_timestamp_ns),
            expected_response=bool(expected_response),
        )

    def close_window(self) -> None:
        p = self._pending
        if p is None:
            return
        if p.response_count == 0:
            self._bump(p.outcome, +1)
        self._last_closed = p
        self._pending = None

    def record_response(self, timestamp_ns: int) -> ResponseClassification | None:
        """Classify one response. Returns None when no window covers it."""

        p = self._pending
        ts = int(timestamp_ns)
        closed = False
        if p is not None and ts >= p.onset_timestamp_ns:
            target = p
        elif self._last_closed is not None and ts >= self._last_closed.onset_timestamp_ns and (
            p is None or ts < p.onset_timestamp_ns
        ):
            target = self._last_closed
            closed = True
        else:
            return None

        rt_ms = (ts - target.onset_timestamp_ns) / 1e6
        self._responses += 1
        target.response_count += 1

        if target.response_count == 1:
            if closed:
                # The silent outcome was already tallied at close.
                self._bump(TrialOutcome.OMISSION if target.expected_response else TrialOutcome.CORRECT_REJECTION, -1)
            target.first_response_time_ms = rt_ms
            target.is_anticipatory = rt_ms < self._threshold_ms
            self._bump(target.outcome, +1)
            if target.is_anticipatory:
                self._anticipatory += 1
        elif target.response_count == 2:
            self._multiple += 1

        return ResponseClassification(
            trial_index=target.trial_index,
            outcome=target.outcome,
            response_time_ms=rt_ms,
            is_anticipatory=target.is_anticipatory,
            is_multiple_response=target.response_count > 1,
            expected_response=target.expected_response,
        )

    def counts(self) -> LiveCounts:
        return LiveCounts(
            hits=self._counts.get(TrialOutcome.HIT, 0),
            omissions=self._counts.get(TrialOutcome.OMISSION, 0),
            commissions=self._counts.get(TrialOutcome.COMMISSION, 0),
            correct_rejections=self._counts.get(TrialOutcome.CORRECT_REJECTION, 0),
            anticipatory=self._anticipatory,
            multiple_responses=self._multiple,
            responses=self._responses,
        )

    def _bump(self, outcome: TrialOutcome, delta: int) -> None:
        self._counts[outcome] = self._counts.get(outcome, 0) + delta
