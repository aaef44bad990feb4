from __future__ import annotations

from focus_cpt.classifier import LiveCounts, ResponseClassifier
from focus_cpt.trials import TrialOutcome

MS = 1_000_000


def test_no_open_window_returns_none() -> None:
    c = ResponseClassifier()
    c.clear()
    assert c.record_response(5 * MS) is None
    assert c.counts() == LiveCounts()


def test_fast_response_is_anticipatory() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 1_000 * MS, expected_response=True)

    r = c.record_response(1_120 * MS)
    assert r is not None
    assert r.outcome is TrialOutcome.HIT
    assert r.response_time_ms == 120.0
    assert r.is_anticipatory is True
    assert c.counts().anticipatory == 1


def test_response_over_threshold_is_not_anticipatory() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 1_000 * MS, expected_response=True)

    r = c.record_response(1_151 * MS)
    assert r is not None
    assert r.is_anticipatory is False


def test_threshold_is_configurable() -> None:
    c = ResponseClassifier(anticipatory_threshold_ms=200.0)
    c.clear()
    c.open_window(0, 0, expected_response=True)
    r = c.record_response(180 * MS)
    assert r is not None and r.is_anticipatory


def test_second_press_marks_multiple_and_keeps_first_outcome() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(3, 0, expected_response=False)

    first = c.record_response(400 * MS)
    second = c.record_response(700 * MS)
    third = c.record_response(900 * MS)
    assert first is not None and second is not None and third is not None

    assert first.outcome is TrialOutcome.COMMISSION
    assert first.is_multiple_response is False
    assert second.outcome is TrialOutcome.COMMISSION
    assert second.is_multiple_response is True
    assert c.pending is not None
    assert c.pending.first_response_time_ms == 400.0

    counts = c.counts()
    assert counts.commissions == 1
    assert counts.multiple_responses == 1
    assert counts.responses == 3


def test_silent_windows_tally_on_close() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 0, expected_response=True)
    c.open_window(1, 2_100 * MS, expected_response=False)
    c.close_window()

    counts = c.counts()
    assert counts.omissions == 1
    assert counts.correct_rejections == 1
    assert c.pending is None


def test_late_arriving_response_amends_previous_trial() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 0, expected_response=True)
    c.open_window(1, 2_100 * MS, expected_response=False)
    assert c.counts().omissions == 1

    # Stamped inside trial 0's window, delivered after trial 1 opened.
    r = c.record_response(500 * MS)
    assert r is not None
    assert r.trial_index == 0
    assert r.outcome is TrialOutcome.HIT

    counts = c.counts()
    assert counts.omissions == 0
    assert counts.hits == 1


def test_response_before_any_window_is_ignored() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 1_000 * MS, expected_response=True)
    assert c.record_response(900 * MS) is None
    assert c.counts().responses == 0


def test_clear_resets_everything() -> None:
    c = ResponseClassifier()
    c.clear()
    c.open_window(0, 0, expected_response=True)
    c.record_response(300 * MS)
    c.close_window()
    c.clear()

    assert c.pending is None
    assert c.counts() == LiveCounts()
    assert c.record_response(400 * MS) is None
