from __future__ import annotations

import pytest

from focus_cpt.config import CptConfig, ScoringConfig, normalize_total_trials
from focus_cpt.errors import ConfigError


def test_defaults_match_standard_protocol() -> None:
    cfg = CptConfig()
    assert cfg.total_trials == 648
    assert cfg.period_ms == 2100.0
    assert cfg.period_ns == 2_100_000_000
    assert cfg.stimulus_duration_ns == 100_000_000
    assert cfg.buffer_ns == 500_000_000


def test_test_duration() -> None:
    cfg = CptConfig()
    assert cfg.test_duration_ms() == 648 * 2100.0
    # 22.68 minutes shown with one decimal.
    assert cfg.test_duration_minutes() == 22.7


@pytest.mark.parametrize(
    ("total", "isi", "minutes"),
    [
        (4, 2000.0, 0.1),
        (100, 2000.0, 3.5),
        (200, 1400.0, 5.0),
    ],
)
def test_test_duration_minutes_rounds_to_one_decimal(total: int, isi: float, minutes: float) -> None:
    cfg = CptConfig(total_trials=total, interstimulus_interval_ms=isi)
    assert cfg.test_duration_minutes() == minutes


@pytest.mark.parametrize(
    "kwargs",
    [
        {"total_trials": 7},
        {"total_trials": 0},
        {"stimulus_duration_ms": 0.0},
        {"interstimulus_interval_ms": -1.0},
        {"buffer_ms": float("nan")},
    ],
)
def test_invalid_session_config(kwargs: dict) -> None:
    with pytest.raises(ConfigError):
        CptConfig(**kwargs)


def test_normalized_count_builds_a_valid_config() -> None:
    cfg = CptConfig(total_trials=normalize_total_trials(7))
    assert cfg.total_trials == 8


def test_invalid_scoring_config() -> None:
    with pytest.raises(ConfigError):
        ScoringConfig(borderline_threshold=0.5, normal_threshold=0.0)
    with pytest.raises(ConfigError):
        ScoringConfig(probability_floor=0.0)
