from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .config import CptConfig, ScoringConfig
from .normative import NormativeSource
from .reconstruct import reconstruct_trials
from .scoring import AttentionMetrics, SubjectInfo, score_trials
from .trials import StimulusType, TestComplete, TrialResult


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Everything a finished (or aborted) session produced.

    Trials and metrics are derived once from the final event log and never
    recomputed in place.
    """

    config: CptConfig
    sequence: tuple[StimulusType, ...]
    complete: TestComplete
    trials: tuple[TrialResult, ...]
    metrics: AttentionMetrics

    @property
    def aborted(self) -> bool:
        return self.complete.aborted

    @property
    def trials_presented(self) -> int:
        return len(self.trials)


def session_result_from_completion(
    complete: TestComplete,
    *,
    config: CptConfig,
    sequence: Sequence[StimulusType],
    subject: SubjectInfo,
    normative: NormativeSource | None = None,
    scoring: ScoringConfig | None = None,
) -> SessionResult:
    """Reconstruct and score a completed or aborted session."""

    scoring_cfg = scoring if scoring is not None else ScoringConfig()
    trials = reconstruct_trials(
        complete.events,
        anticipatory_threshold_ms=scoring_cfg.anticipatory_threshold_ms,
    )
    metrics = score_trials(trials, subject, normative, config=scoring_cfg)
    return SessionResult(
        config=config,
        sequence=tuple(sequence),
        complete=complete,
        trials=tuple(trials),
        metrics=metrics,
    )
