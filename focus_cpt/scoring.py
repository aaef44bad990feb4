"""Signal-detection and normative scoring of reconstructed trials.

The Attention Comparison Score (ACS) combines three z-scores against the
subject's age/gender norms:

* response time: mean RT of valid hits in the first half,
* D': hit and false-alarm rates in the second half,
* variability: spread of valid-hit RTs over the whole session,

plus a fixed constant. A z-score whose norm is missing or unusable is None,
and the ACS is None when no z-score could be computed at all. It never
defaults to zero.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from .config import ScoringConfig
from .distributions import DPrimeDetails, d_prime_details, mean, normal_cdf, standard_deviation, z_score
from .normative import Gender, NormativeSource, NormativeStats
from .reconstruct import reconstruct_trials
from .trials import StimulusType, TrialEvent, TrialOutcome, TrialResult

logger = logging.getLogger(__name__)


class AcsInterpretation(StrEnum):
    NORMAL = "normal"
    BORDERLINE = "borderline"
    NOT_WITHIN_NORMAL_LIMITS = "not-within-normal-limits"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class SubjectInfo:
    age: float
    gender: Gender


@dataclass(frozen=True, slots=True)
class ZScores:
    response_time: float | None
    d_prime: float | None
    variability: float | None

    def available(self) -> list[float]:
        return [z for z in (self.response_time, self.d_prime, self.variability) if z is not None]


@dataclass(frozen=True, slots=True)
class ValidityAssessment:
    anticipatory_responses: int
    valid: bool
    exclusion_reason: str | None = None


@dataclass(frozen=True, slots=True)
class AttentionMetrics:
    hits: int
    omissions: int
    commissions: int
    correct_rejections: int
    anticipatory_responses: int
    multiple_responses: int

    omission_percent: float
    commission_percent: float

    mean_response_time_ms: float
    first_half_mean_response_time_ms: float
    post_commission_mean_response_time_ms: float | None
    variability: float
    d_prime: float
    d_prime_details: DPrimeDetails

    trial_count: int
    normative_group: str | None
    z_scores: ZScores
    acs: float | None
    acs_interpretation: AcsInterpretation
    attention_percentile: float | None
    validity: ValidityAssessment

    @property
    def scoring_available(self) -> bool:
        return self.acs is not None


def split_halves(trials: Sequence[TrialResult]) -> tuple[list[TrialResult], list[TrialResult]]:
    mid = len(trials) // 2
    return list(trials[:mid]), list(trials[mid:])


def valid_hit_times(trials: Iterable[TrialResult]) -> list[float]:
    return [t.response_time_ms for t in trials if t.is_valid_hit and t.response_time_ms is not None]


def _count(trials: Iterable[TrialResult], outcome: TrialOutcome) -> int:
    return sum(1 for t in trials if t.outcome is outcome)


def second_half_rates(second_half: Sequence[TrialResult]) -> tuple[float, float]:
    """(hit_rate, false_alarm_rate); 0.5 when a denominator is empty."""

    hits = _count(second_half, TrialOutcome.HIT)
    omissions = _count(second_half, TrialOutcome.OMISSION)
    commissions = _count(second_half, TrialOutcome.COMMISSION)
    rejections = _count(second_half, TrialOutcome.CORRECT_REJECTION)
    targets = hits + omissions
    non_targets = commissions + rejections
    hit_rate = hits / targets if targets > 0 else 0.5
    fa_rate = commissions / non_targets if non_targets > 0 else 0.5
    return hit_rate, fa_rate


def interpret_acs(acs: float | None, config: ScoringConfig) -> AcsInterpretation:
    if acs is None:
        return AcsInterpretation.UNAVAILABLE
    if acs >= config.normal_threshold:
        return AcsInterpretation.NORMAL
    if acs >= config.borderline_threshold:
        return AcsInterpretation.BORDERLINE
    return AcsInterpretation.NOT_WITHIN_NORMAL_LIMITS


def composite_score(z: ZScores, constant: float) -> float | None:
    available = z.available()
    if not available:
        return None
    return sum(available) + constant


def assess_validity(
    *,
    anticipatory: int,
    total_targets: int,
    valid_responses: int,
    config: ScoringConfig,
) -> ValidityAssessment:
    anticipatory_pct = (anticipatory / total_targets) * 100.0 if total_targets > 0 else 0.0
    if anticipatory_pct > config.max_anticipatory_percent:
        return ValidityAssessment(
            anticipatory_responses=anticipatory,
            valid=False,
            exclusion_reason=f"High anticipatory response rate ({anticipatory_pct:.1f}% of targets)",
        )
    if valid_responses < config.min_valid_responses:
        return ValidityAssessment(
            anticipatory_responses=anticipatory,
            valid=False,
            exclusion_reason=(
                f"Insufficient valid response data ({valid_responses}/{config.min_valid_responses} minimum)"
            ),
        )
    return ValidityAssessment(anticipatory_responses=anticipatory, valid=True)


def score_trials(
    trials: Sequence[TrialResult],
    subject: SubjectInfo,
    normative: NormativeSource | None = None,
    *,
    config: ScoringConfig | None = None,
) -> AttentionMetrics:
    cfg = config if config is not None else ScoringConfig()
    trials = sorted(trials, key=lambda t: t.trial_index)
    first_half, second_half = split_halves(trials)

    hits = _count(trials, TrialOutcome.HIT)
    omissions = _count(trials, TrialOutcome.OMISSION)
    commissions = _count(trials, TrialOutcome.COMMISSION)
    rejections = _count(trials, TrialOutcome.CORRECT_REJECTION)
    anticipatory = sum(1 for t in trials if t.is_anticipatory)
    multiple = sum(1 for t in trials if t.is_multiple_response)
    total_targets = sum(1 for t in trials if t.stimulus_type is StimulusType.TARGET)
    total_non_targets = len(trials) - total_targets

    all_valid_rts = valid_hit_times(trials)
    first_half_rt = mean(valid_hit_times(first_half))
    variability = standard_deviation(all_valid_rts)

    post_commission = [
        t.post_commission_response_time_ms
        for t in trials
        if t.follows_commission and t.post_commission_response_time_ms is not None and not t.is_anticipatory
    ]

    hit_rate, fa_rate = second_half_rates(second_half)
    dp = d_prime_details(hit_rate, fa_rate, floor=cfg.probability_floor)
    logger.debug(
        "D' breakdown: hit rate %.6f, FA rate %.6f, zHit %.4f, zFA %.4f, D' %.4f",
        hit_rate,
        fa_rate,
        dp.z_hit,
        dp.z_fa,
        dp.result,
    )

    norms: NormativeStats | None = None
    if len(trials) >= cfg.min_scorable_trials and normative is not None:
        norms = normative.lookup(subject.age, subject.gender)

    if norms is None:
        z = ZScores(response_time=None, d_prime=None, variability=None)
    else:
        z = ZScores(
            response_time=z_score(first_half_rt, norms.response_time_mean, norms.response_time_sd),
            d_prime=z_score(dp.result, norms.d_prime_mean, norms.d_prime_sd),
            variability=z_score(variability, norms.variability_mean, norms.variability_sd),
        )

    acs = composite_score(z, cfg.acs_constant)
    interpretation = interpret_acs(acs, cfg)
    percentile = None if acs is None else normal_cdf(acs - cfg.acs_constant)

    metrics = AttentionMetrics(
        hits=hits,
        omissions=omissions,
        commissions=commissions,
        correct_rejections=rejections,
        anticipatory_responses=anticipatory,
        multiple_responses=multiple,
        omission_percent=(omissions / total_targets) * 100.0 if total_targets > 0 else 0.0,
        commission_percent=(commissions / total_non_targets) * 100.0 if total_non_targets > 0 else 0.0,
        mean_response_time_ms=mean(all_valid_rts),
        first_half_mean_response_time_ms=first_half_rt,
        post_commission_mean_response_time_ms=mean(post_commission) if post_commission else None,
        variability=variability,
        d_prime=dp.result,
        d_prime_details=dp,
        trial_count=len(trials),
        normative_group=None if norms is None else norms.age_range,
        z_scores=z,
        acs=acs,
        acs_interpretation=interpretation,
        attention_percentile=percentile,
        validity=assess_validity(
            anticipatory=anticipatory,
            total_targets=total_targets,
            valid_responses=len(all_valid_rts),
            config=cfg,
        ),
    )
    logger.info(
        "scored %d trials: D' %.3f, variability %.1f ms, ACS %s (%s)",
        metrics.trial_count,
        metrics.d_prime,
        metrics.variability,
        "n/a" if acs is None else f"{acs:.2f}",
        interpretation.value,
    )
    return metrics


def calculate_attention_metrics(
    events: Iterable[TrialEvent],
    subject: SubjectInfo,
    normative: NormativeSource | None = None,
    *,
    config: ScoringConfig | None = None,
) -> AttentionMetrics:
    cfg = config if config is not None else ScoringConfig()
    trials = reconstruct_trials(events, anticipatory_threshold_ms=cfg.anticipatory_threshold_ms)
    return score_trials(trials, subject, normative, config=cfg)
