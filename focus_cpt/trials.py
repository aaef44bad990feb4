from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class StimulusType(StrEnum):
    TARGET = "target"
    NON_TARGET = "non-target"


class TrialEventType(StrEnum):
    BUFFER_START = "buffer-start"
    STIMULUS_ONSET = "stimulus-onset"
    STIMULUS_OFFSET = "stimulus-offset"
    RESPONSE = "response"


class TrialOutcome(StrEnum):
    HIT = "hit"
    OMISSION = "omission"
    COMMISSION = "commission"
    CORRECT_REJECTION = "correct-rejection"


def outcome_for_response(stimulus_type: StimulusType) -> TrialOutcome:
    return TrialOutcome.HIT if stimulus_type is StimulusType.TARGET else TrialOutcome.COMMISSION


def outcome_for_silence(stimulus_type: StimulusType) -> TrialOutcome:
    return TrialOutcome.OMISSION if stimulus_type is StimulusType.TARGET else TrialOutcome.CORRECT_REJECTION


@dataclass(frozen=True, slots=True)
class TrialEvent:
    """One entry of the append-only session log."""

    trial_index: int
    stimulus_type: StimulusType
    event_type: TrialEventType
    timestamp_ns: int
    response_correct: bool | None = None  # RESPONSE events only


@dataclass(frozen=True, slots=True)
class TestComplete:
    __test__ = False  # not a pytest class

    events: tuple[TrialEvent, ...]
    elapsed_time_ns: int
    aborted: bool = False

    @property
    def elapsed_time_ms(self) -> float:
        return self.elapsed_time_ns / 1_000_000.0


@dataclass(frozen=True, slots=True)
class TrialResult:
    """Authoritative per-trial outcome, built only by reconstruction."""

    trial_index: int
    stimulus_type: StimulusType
    outcome: TrialOutcome
    response_time_ms: float | None
    is_anticipatory: bool
    is_multiple_response: bool
    follows_commission: bool
    post_commission_response_time_ms: float | None = None

    @property
    def is_valid_hit(self) -> bool:
        return self.outcome is TrialOutcome.HIT and self.response_time_ms is not None and not self.is_anticipatory
