from __future__ import annotations

import math

import pytest

from focus_cpt.config import ScoringConfig
from focus_cpt.distributions import calculate_d_prime, standard_deviation
from focus_cpt.normative import Gender, NormativeTable
from focus_cpt.scoring import (
    AcsInterpretation,
    SubjectInfo,
    ZScores,
    assess_validity,
    calculate_attention_metrics,
    composite_score,
    interpret_acs,
    score_trials,
)
from focus_cpt.trials import StimulusType, TrialEvent, TrialEventType, TrialOutcome, TrialResult

T = StimulusType.TARGET
N = StimulusType.NON_TARGET
SUBJECT = SubjectInfo(age=25, gender=Gender.MALE)

FIRST_HALF_RTS = [424.28, 422.32]
SECOND_HALF_RTS = [594.92, 616.85, 413.52, 500.0, 480.0]


def _trial(
    i: int,
    stim: StimulusType,
    rt: float | None = None,
    *,
    anticipatory: bool = False,
    multiple: bool = False,
    follows_commission: bool = False,
) -> TrialResult:
    if rt is None:
        outcome = TrialOutcome.OMISSION if stim is T else TrialOutcome.CORRECT_REJECTION
    else:
        outcome = TrialOutcome.HIT if stim is T else TrialOutcome.COMMISSION
    return TrialResult(
        trial_index=i,
        stimulus_type=stim,
        outcome=outcome,
        response_time_ms=rt,
        is_anticipatory=anticipatory,
        is_multiple_response=multiple,
        follows_commission=follows_commission,
        post_commission_response_time_ms=rt if follows_commission else None,
    )


def _session() -> list[TrialResult]:
    """16 trials: second half has 5/5 hits and 0/3 commissions."""

    trials = [_trial(0, T, FIRST_HALF_RTS[0]), _trial(1, T, FIRST_HALF_RTS[1])]
    trials += [_trial(i, N) for i in range(2, 8)]
    trials += [_trial(8 + k, T, rt) for k, rt in enumerate(SECOND_HALF_RTS)]
    trials += [_trial(i, N) for i in range(13, 16)]
    return trials


def _norm_row(**overrides) -> dict:
    row = {
        "age_range": "20-29",
        "gender": "Male",
        "min_age": 20,
        "max_age": 29,
        "response_time_mean": 400.0,
        "response_time_sd": 50.0,
        "d_prime_mean": 4.0,
        "d_prime_sd": 1.5,
        "variability_mean": 80.0,
        "variability_sd": 20.0,
    }
    row.update(overrides)
    return row


def test_perfect_second_half_with_norms() -> None:
    table = NormativeTable.from_rows([_norm_row()])
    m = score_trials(_session(), SUBJECT, table)

    assert m.trial_count == 16
    assert m.hits == 7
    assert m.commissions == 0
    assert m.d_prime == pytest.approx(calculate_d_prime(1.0, 0.0))
    assert m.d_prime == pytest.approx(8.52, abs=0.01)
    assert m.first_half_mean_response_time_ms == pytest.approx(423.3)
    assert m.variability == pytest.approx(standard_deviation(FIRST_HALF_RTS + SECOND_HALF_RTS))
    assert m.normative_group == "20-29"

    z = m.z_scores
    assert z.response_time == pytest.approx((423.3 - 400.0) / 50.0)
    assert z.d_prime == pytest.approx((m.d_prime - 4.0) / 1.5)
    assert z.variability == pytest.approx((m.variability - 80.0) / 20.0)

    assert m.acs is not None and math.isfinite(m.acs)
    assert m.acs == pytest.approx(z.response_time + z.d_prime + z.variability + 1.80)
    assert m.acs_interpretation is AcsInterpretation.NORMAL
    assert m.acs_interpretation is interpret_acs(m.acs, ScoringConfig())
    assert m.attention_percentile is not None
    assert 0.0 <= m.attention_percentile <= 100.0
    assert m.scoring_available


def test_no_normative_data_leaves_scores_unavailable() -> None:
    m = score_trials(_session(), SUBJECT, None)
    assert m.z_scores == ZScores(None, None, None)
    assert m.acs is None
    assert m.acs_interpretation is AcsInterpretation.UNAVAILABLE
    assert m.attention_percentile is None
    assert m.normative_group is None
    assert not m.scoring_available
    # Raw metrics are still reported.
    assert m.d_prime == pytest.approx(8.52, abs=0.01)


def test_subject_outside_norm_bands() -> None:
    table = NormativeTable.from_rows([_norm_row()])
    m = score_trials(_session(), SubjectInfo(age=70, gender=Gender.MALE), table)
    assert m.acs is None


def test_zero_sd_skips_only_that_metric() -> None:
    table = NormativeTable.from_rows([_norm_row(response_time_sd=0.0)])
    m = score_trials(_session(), SUBJECT, table)

    assert m.z_scores.response_time is None
    assert m.z_scores.d_prime is not None and m.z_scores.variability is not None
    assert m.acs == pytest.approx(m.z_scores.d_prime + m.z_scores.variability + 1.80)


def test_all_norms_unusable_gives_no_acs() -> None:
    table = NormativeTable.from_rows(
        [_norm_row(response_time_sd=0.0, d_prime_sd=None, variability_sd=-3.0)]
    )
    m = score_trials(_session(), SUBJECT, table)
    assert m.z_scores.available() == []
    assert m.acs is None
    assert m.acs_interpretation is AcsInterpretation.UNAVAILABLE


def test_anticipatory_hits_are_excluded_from_rt_metrics() -> None:
    trials = _session()
    trials[1] = _trial(1, T, 100.0, anticipatory=True)
    m = score_trials(trials, SUBJECT)

    assert m.first_half_mean_response_time_ms == pytest.approx(424.28)
    assert m.variability == pytest.approx(standard_deviation([424.28] + SECOND_HALF_RTS))
    assert m.anticipatory_responses == 1
    assert m.hits == 7


def test_percentages_and_counts() -> None:
    trials = _session()
    trials[8] = _trial(8, T)  # omission
    trials[13] = _trial(13, N, 450.0, multiple=True)
    trials[14] = _trial(14, T, 390.0, follows_commission=True)
    m = score_trials(trials, SUBJECT)

    assert m.omissions == 1
    assert m.commissions == 1
    assert m.multiple_responses == 1
    assert m.omission_percent == pytest.approx(100.0 / 8)
    assert m.commission_percent == pytest.approx(100.0 / 8)
    assert m.post_commission_mean_response_time_ms == pytest.approx(390.0)


def test_empty_session_does_not_raise() -> None:
    table = NormativeTable.from_rows([_norm_row()])
    m = score_trials([], SUBJECT, table)
    assert m.trial_count == 0
    assert m.d_prime == pytest.approx(0.0)
    assert m.mean_response_time_ms == 0.0
    assert m.variability == 0.0
    assert m.acs is None
    assert m.validity.valid is False


@pytest.mark.parametrize(
    ("acs", "expected"),
    [
        (2.5, AcsInterpretation.NORMAL),
        (0.0, AcsInterpretation.NORMAL),
        (-0.01, AcsInterpretation.BORDERLINE),
        (-1.80, AcsInterpretation.BORDERLINE),
        (-1.81, AcsInterpretation.NOT_WITHIN_NORMAL_LIMITS),
        (None, AcsInterpretation.UNAVAILABLE),
    ],
)
def test_interpretation_thresholds(acs: float | None, expected: AcsInterpretation) -> None:
    assert interpret_acs(acs, ScoringConfig()) is expected


def test_composite_score() -> None:
    assert composite_score(ZScores(None, None, None), 1.8) is None
    assert composite_score(ZScores(0.5, None, -1.0), 1.8) == pytest.approx(1.3)


def test_validity_rules() -> None:
    cfg = ScoringConfig()
    ok = assess_validity(anticipatory=1, total_targets=20, valid_responses=12, config=cfg)
    assert ok.valid and ok.exclusion_reason is None

    eager = assess_validity(anticipatory=3, total_targets=20, valid_responses=12, config=cfg)
    assert not eager.valid
    assert "anticipatory" in eager.exclusion_reason

    sparse = assess_validity(anticipatory=0, total_targets=20, valid_responses=4, config=cfg)
    assert not sparse.valid
    assert "Insufficient" in sparse.exclusion_reason


def test_metrics_from_event_log() -> None:
    ms = 1_000_000
    period = 2_100 * ms
    seq = [T, N, N, T]
    events = [TrialEvent(0, T, TrialEventType.BUFFER_START, 0)]
    for i, stim in enumerate(seq):
        onset = 500 * ms + i * period
        events.append(TrialEvent(i, stim, TrialEventType.STIMULUS_ONSET, onset))
        events.append(TrialEvent(i, stim, TrialEventType.STIMULUS_OFFSET, onset + 100 * ms))
    events.append(TrialEvent(0, T, TrialEventType.RESPONSE, 500 * ms + 300 * ms, response_correct=True))
    events.append(TrialEvent(2, N, TrialEventType.RESPONSE, 500 * ms + 2 * period + 400 * ms, response_correct=False))

    m = calculate_attention_metrics(events, SUBJECT, config=ScoringConfig(min_valid_responses=1))
    assert m.hits == 1
    assert m.omissions == 1
    assert m.commissions == 1
    assert m.correct_rejections == 1
    assert m.first_half_mean_response_time_ms == pytest.approx(300.0)
    # Second half: one omission, one commission.
    assert m.d_prime == pytest.approx(calculate_d_prime(0.0, 1.0))
    assert m.validity.valid
