from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import ConfigError

NS_PER_MS = 1_000_000


def normalize_total_trials(total_trials: int) -> int:
    """Round an odd trial count up to the next even number, never below 2."""

    n = max(2, int(total_trials))
    return n if n % 2 == 0 else n + 1


def validate_total_trials(total_trials: int) -> None:
    if total_trials < 2 or total_trials % 2 != 0:
        raise ConfigError(f"total_trials must be an even integer >= 2, got {total_trials}")


@dataclass(frozen=True, slots=True)
class CptConfig:
    # Defaults mirror the standard 648-trial visual protocol.
    stimulus_duration_ms: float = 100.0
    interstimulus_interval_ms: float = 2000.0
    total_trials: int = 648
    buffer_ms: float = 500.0

    def __post_init__(self) -> None:
        validate_total_trials(self.total_trials)
        if not math.isfinite(self.stimulus_duration_ms) or self.stimulus_duration_ms <= 0:
            raise ConfigError("stimulus_duration_ms must be > 0")
        if not math.isfinite(self.interstimulus_interval_ms) or self.interstimulus_interval_ms < 0:
            raise ConfigError("interstimulus_interval_ms must be >= 0")
        if not math.isfinite(self.buffer_ms) or self.buffer_ms < 0:
            raise ConfigError("buffer_ms must be >= 0")

    @property
    def period_ms(self) -> float:
        return self.stimulus_duration_ms + self.interstimulus_interval_ms

    @property
    def stimulus_duration_ns(self) -> int:
        return int(round(self.stimulus_duration_ms * NS_PER_MS))

    @property
    def period_ns(self) -> int:
        return int(round(self.period_ms * NS_PER_MS))

    @property
    def buffer_ns(self) -> int:
        return int(round(self.buffer_ms * NS_PER_MS))

    def test_duration_ms(self) -> float:
        return self.total_trials * self.period_ms

    def test_duration_minutes(self) -> float:
        # One decimal place, as shown on the settings screen.
        return round(self.test_duration_ms() / 60000.0, 1)


@dataclass(frozen=True, slots=True)
class ScoringConfig:
    anticipatory_threshold_ms: float = 150.0
    acs_constant: float = 1.80
    normal_threshold: float = 0.0
    borderline_threshold: float = -1.80

    # Validity rules.
    max_anticipatory_percent: float = 10.0
    min_valid_responses: int = 10

    # Below this many trials the halves are meaningless; z-scores stay None.
    min_scorable_trials: int = 2

    probability_floor: float = 1e-5

    def __post_init__(self) -> None:
        if self.anticipatory_threshold_ms < 0:
            raise ConfigError("anticipatory_threshold_ms must be >= 0")
        if self.borderline_threshold > self.normal_threshold:
            raise ConfigError("borderline_threshold must be <= normal_threshold")
        if not (0.0 < self.probability_floor < 0.5):
            raise ConfigError("probability_floor must be in (0.0, 0.5)")
        if self.min_valid_responses < 0:
            raise ConfigError("min_valid_responses must be >= 0")
        if self.min_scorable_trials < 0:
            raise ConfigError("min_scorable_trials must be >= 0")
