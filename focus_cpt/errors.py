"""Exception taxonomy for the attention test engine.

Only programming and configuration mistakes raise. Numerical edge cases in
scoring are absorbed as ``None`` fields instead.
"""

from __future__ import annotations


class CptError(Exception):
    """Base class for all engine errors."""


class ConfigError(CptError, ValueError):
    """Invalid session configuration (e.g. an odd trial count)."""


class TimingError(CptError, RuntimeError):
    """Scheduler misuse: starting twice, or responding with no session."""


class DataError(CptError, ValueError):
    """Malformed or truncated event log handed to reconstruction."""

    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])
