"""Normal-distribution helpers and signal-detection sensitivity (D').

The inverse CDF is the Abramowitz & Stegun rational approximation
(Handbook of Mathematical Functions, eq. 26.2.23), with the clinical sign
convention: the result is negated for p > 0.5. With that convention

    D' = z(false_alarm_rate) - z(hit_rate)

is positive for good discrimination. Perfect performance after clamping to
[1e-5, 1 - 1e-5] gives D' ~= 8.53.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

PROBABILITY_FLOOR = 1e-5

_C0 = 2.515517
_C1 = 0.802853
_C2 = 0.010328
_D1 = 1.432788
_D2 = 0.189269
_D3 = 0.001308


def clamp_probability(p: float, floor: float = PROBABILITY_FLOOR) -> float:
    return max(floor, min(1.0 - floor, float(p)))


def inverse_normal_cdf(p: float) -> float:
    if p <= 0.0:
        return -math.inf
    if p >= 1.0:
        return math.inf
    if p == 0.5:
        return 0.0

    q = 1.0 - p if p > 0.5 else p
    t = math.sqrt(-2.0 * math.log(q))
    num = _C0 + _C1 * t + _C2 * t * t
    den = 1.0 + _D1 * t + _D2 * t * t + _D3 * t * t * t
    z = t - num / den
    return -z if p > 0.5 else z


def normal_cdf(z: float) -> float:
    """Standard normal CDF as a percentile in [0, 100]."""

    if z <= -6.0:
        return 0.0
    if z >= 6.0:
        return 100.0
    return 50.0 * (1.0 + math.erf(z / math.sqrt(2.0)))


@dataclass(frozen=True, slots=True)
class DPrimeDetails:
    hit_rate: float
    false_alarm_rate: float
    adjusted_hit_rate: float
    adjusted_false_alarm_rate: float
    z_hit: float
    z_fa: float
    result: float


def d_prime_details(hit_rate: float, false_alarm_rate: float, *, floor: float = PROBABILITY_FLOOR) -> DPrimeDetails:
    adj_hit = clamp_probability(hit_rate, floor)
    adj_fa = clamp_probability(false_alarm_rate, floor)
    z_hit = inverse_normal_cdf(adj_hit)
    z_fa = inverse_normal_cdf(adj_fa)
    return DPrimeDetails(
        hit_rate=float(hit_rate),
        false_alarm_rate=float(false_alarm_rate),
        adjusted_hit_rate=adj_hit,
        adjusted_false_alarm_rate=adj_fa,
        z_hit=z_hit,
        z_fa=z_fa,
        result=z_fa - z_hit,
    )


def calculate_d_prime(hit_rate: float, false_alarm_rate: float) -> float:
    return d_prime_details(hit_rate, false_alarm_rate).result


def mean(values: Sequence[float]) -> float:
    return 0.0 if not values else math.fsum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Response-time variability: root mean squared deviation (divisor n).

    Zero for fewer than two samples.
    """

    if len(values) < 2:
        return 0.0
    m = mean(values)
    return math.sqrt(math.fsum((v - m) ** 2 for v in values) / len(values))


def z_score(value: float, norm_mean: float | None, norm_sd: float | None) -> float | None:
    """(value - mean) / sd, or None when the normative SD cannot be used."""

    if norm_mean is None or norm_sd is None:
        return None
    if not math.isfinite(norm_sd) or norm_sd <= 0.0 or not math.isfinite(norm_mean):
        return None
    return (value - norm_mean) / norm_sd
