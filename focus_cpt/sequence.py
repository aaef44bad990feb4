"""Randomized stimulus sequence with the two-half target ratio.

First half: 22.5% targets. Second half: 77.5% targets. Each half is shuffled
independently so its ratio is preserved exactly.
"""

from __future__ import annotations

import random
from typing import Protocol, TypeVar

from .config import validate_total_trials
from .trials import StimulusType

FIRST_HALF_TARGET_RATIO = 0.225
SECOND_HALF_TARGET_RATIO = 0.775

T = TypeVar("T")


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int:
        """Uniform integer in [a, b], both inclusive."""
        ...


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


def _round_half_up(x: float) -> int:
    # Half counts like 2.5 must round up, not to even.
    return int(x + 0.5)


def target_counts(total_trials: int) -> tuple[int, int]:
    """Return (first_half_targets, second_half_targets)."""

    validate_total_trials(total_trials)
    half = total_trials // 2
    return (
        _round_half_up(half * FIRST_HALF_TARGET_RATIO),
        _round_half_up(half * SECOND_HALF_TARGET_RATIO),
    )


def fisher_yates_shuffle(items: list[T], rng: RandomSource) -> None:
    """Shuffle in place, walking from the last index down to 1."""

    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


def generate_trial_sequence(total_trials: int, *, rng: RandomSource | None = None) -> list[StimulusType]:
    first_targets, second_targets = target_counts(total_trials)
    half = total_trials // 2
    source: RandomSource = rng if rng is not None else random.SystemRandom()

    first = [StimulusType.TARGET] * first_targets + [StimulusType.NON_TARGET] * (half - first_targets)
    second = [StimulusType.TARGET] * second_targets + [StimulusType.NON_TARGET] * (half - second_targets)

    fisher_yates_shuffle(first, source)
    fisher_yates_shuffle(second, source)
    return first + second


class TrialSequenceGenerator:
    def __init__(self, rng: RandomSource | None = None) -> None:
        self._rng = rng

    def generate(self, total_trials: int) -> list[StimulusType]:
        return generate_trial_sequence(total_trials, rng=self._rng)
