"""Age/gender normative reference data.

The engine ships no clinical norms. Rows come from a JSON file supplied by the
deployment, a list of objects with these keys::

    {"age_range": "30-39", "gender": "Male", "min_age": 30, "max_age": 39,
     "response_time_mean": 360.0, "response_time_sd": 70.0,
     "d_prime_mean": 4.6, "d_prime_sd": 1.5,
     "variability_mean": 75.0, "variability_sd": 25.0}
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from .errors import ConfigError

logger = logging.getLogger(__name__)


class Gender(StrEnum):
    MALE = "Male"
    FEMALE = "Female"


@dataclass(frozen=True, slots=True)
class NormativeStats:
    age_range: str
    gender: str
    min_age: float
    max_age: float
    response_time_mean: float
    response_time_sd: float
    d_prime_mean: float
    d_prime_sd: float
    variability_mean: float
    variability_sd: float

    def covers(self, age: float, gender: str) -> bool:
        return self.min_age <= age <= self.max_age and self.gender.lower() == str(gender).lower()


class NormativeSource(Protocol):
    def lookup(self, age: float, gender: str) -> NormativeStats | None: ...


def _as_float(row: Mapping[str, Any], key: str) -> float:
    value = row.get(key)
    if value is None:
        # Absent SDs become NaN so the z-score for that metric is skipped.
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"normative row field {key!r} is not a number: {value!r}") from exc


def stats_from_row(row: Mapping[str, Any]) -> NormativeStats:
    try:
        age_range = str(row["age_range"])
        gender = str(row["gender"])
        min_age = float(row["min_age"])
        max_age = float(row["max_age"])
    except KeyError as exc:
        raise ConfigError(f"normative row missing field {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"normative row has a non-numeric age bound: {row!r}") from exc
    if min_age > max_age:
        raise ConfigError(f"normative row {age_range!r}: min_age > max_age")
    return NormativeStats(
        age_range=age_range,
        gender=gender,
        min_age=min_age,
        max_age=max_age,
        response_time_mean=_as_float(row, "response_time_mean"),
        response_time_sd=_as_float(row, "response_time_sd"),
        d_prime_mean=_as_float(row, "d_prime_mean"),
        d_prime_sd=_as_float(row, "d_prime_sd"),
        variability_mean=_as_float(row, "variability_mean"),
        variability_sd=_as_float(row, "variability_sd"),
    )


class NormativeTable:
    def __init__(self, rows: Iterable[NormativeStats]) -> None:
        self._rows = tuple(rows)

    def __len__(self) -> int:
        return len(self._rows)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "NormativeTable":
        return cls(stats_from_row(r) for r in rows)

    def lookup(self, age: float, gender: str) -> NormativeStats | None:
        for row in self._rows:
            if row.covers(age, gender):
                return row
        logger.warning("no normative data for age %s, gender %s", age, gender)
        return None


def load_normative_table(path: Path) -> NormativeTable:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ConfigError(f"{path}: expected a JSON list of normative rows")
    return NormativeTable.from_rows(data)
