"""Rebuild authoritative per-trial outcomes from a finished event log.

This is a pure replay of the session log with the same rules the live
classifier applies, and it is the only input to scoring. It copes with logs
cut short by ``stop()`` and with responses whose arrival order differs from
their timestamps: everything is ordered on ``timestamp_ns`` first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from .classifier import ANTICIPATORY_THRESHOLD_MS
from .errors import DataError
from .trials import (
    StimulusType,
    TrialEvent,
    TrialEventType,
    TrialOutcome,
    TrialResult,
    outcome_for_response,
    outcome_for_silence,
)

logger = logging.getLogger(__name__)

# At equal timestamps a boundary sorts before a response, so a response at
# exactly onset(i + 1) belongs to trial i + 1.
_RANK = {
    TrialEventType.BUFFER_START: 0,
    TrialEventType.STIMULUS_ONSET: 1,
    TrialEventType.STIMULUS_OFFSET: 2,
    TrialEventType.RESPONSE: 3,
}


@dataclass(slots=True)
class _Window:
    trial_index: int
    stimulus_type: StimulusType
    onset_ns: int
    responses: int = 0
    first_rt_ms: float | None = None


def order_events(events: Iterable[TrialEvent]) -> list[TrialEvent]:
    return sorted(events, key=lambda e: (e.timestamp_ns, _RANK[e.event_type]))


def find_log_issues(events: Iterable[TrialEvent]) -> list[str]:
    """Describe structural problems in a log; empty for a well-formed one."""

    issues: list[str] = []
    onsets: dict[int, int] = {}
    offsets: dict[int, int] = {}
    for e in events:
        if e.event_type is TrialEventType.STIMULUS_ONSET:
            onsets[e.trial_index] = onsets.get(e.trial_index, 0) + 1
        elif e.event_type is TrialEventType.STIMULUS_OFFSET:
            offsets[e.trial_index] = offsets.get(e.trial_index, 0) + 1

    for idx, count in sorted(onsets.items()):
        if count > 1:
            issues.append(f"trial {idx}: {count} stimulus onsets")
    for idx, count in sorted(offsets.items()):
        if idx not in onsets:
            issues.append(f"trial {idx}: stimulus offset without onset")
        if count > 1:
            issues.append(f"trial {idx}: {count} stimulus offsets")
    if onsets:
        missing = sorted(set(range(max(onsets) + 1)) - set(onsets))
        if missing:
            issues.append(f"missing onsets for trials {missing}")
    return issues


def reconstruct_trials(
    events: Iterable[TrialEvent],
    *,
    anticipatory_threshold_ms: float = ANTICIPATORY_THRESHOLD_MS,
    strict: bool = False,
) -> list[TrialResult]:
    events = list(events)
    issues = find_log_issues(events)
    if issues:
        if strict:
            raise DataError("malformed event log", issues)
        logger.warning("event log has %d issue(s); scoring best effort: %s", len(issues), "; ".join(issues))

    windows: list[_Window] = []
    seen: set[int] = set()
    current: _Window | None = None

    for e in order_events(events):
        if e.event_type is TrialEventType.STIMULUS_ONSET:
            if e.trial_index in seen:
                continue
            seen.add(e.trial_index)
            current = _Window(trial_index=e.trial_index, stimulus_type=e.stimulus_type, onset_ns=e.timestamp_ns)
            windows.append(current)
        elif e.event_type is TrialEventType.RESPONSE:
            if current is None:
                # Pressed during the lead-in buffer.
                continue
            if e.trial_index != current.trial_index:
                logger.debug(
                    "response tagged trial %d assigned to trial %d by timestamp",
                    e.trial_index,
                    current.trial_index,
                )
            current.responses += 1
            if current.responses == 1:
                current.first_rt_ms = (e.timestamp_ns - current.onset_ns) / 1e6

    windows.sort(key=lambda w: w.trial_index)

    results: list[TrialResult] = []
    previous: TrialResult | None = None
    for w in windows:
        if w.responses == 0:
            outcome = outcome_for_silence(w.stimulus_type)
            anticipatory = False
        else:
            outcome = outcome_for_response(w.stimulus_type)
            assert w.first_rt_ms is not None
            anticipatory = w.first_rt_ms < anticipatory_threshold_ms

        follows_commission = (
            previous is not None
            and previous.trial_index == w.trial_index - 1
            and previous.outcome is TrialOutcome.COMMISSION
        )
        result = TrialResult(
            trial_index=w.trial_index,
            stimulus_type=w.stimulus_type,
            outcome=outcome,
            response_time_ms=w.first_rt_ms,
            is_anticipatory=anticipatory,
            is_multiple_response=w.responses > 1,
            follows_commission=follows_commission,
            post_commission_response_time_ms=w.first_rt_ms if follows_commission else None,
        )
        results.append(result)
        previous = result
    return results
