"""Pygame presentation shell for the attention test.

Rendering and input only. Timing lives in focus_cpt.scheduler and scoring in
focus_cpt.scoring; this module pumps the timer loop once per frame and turns
Space / left click into responses.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Protocol

import pygame

from .clock import RealClock
from .config import CptConfig, ScoringConfig, normalize_total_trials
from .normative import Gender, NormativeSource, load_normative_table
from .persistence import SqliteSessionLog
from .results import SessionResult, session_result_from_completion
from .scheduler import Scheduler, SchedulerState
from .scoring import AcsInterpretation, SubjectInfo
from .sequence import SeededRng, TrialSequenceGenerator
from .timers import FrameTimerLoop
from .trials import StimulusType, TestComplete, TrialEvent, TrialEventType

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 720)
# Timer callbacks run at most once per frame; keep frames short.
TARGET_FPS = 240
COUNTDOWN_S = 3

SQUARE_PX = 300
STIMULUS_PX = 20

_BG = (0, 0, 0)
_FG = (235, 235, 245)
_DIM = (150, 150, 160)
_INTERPRETATION_COLORS = {
    AcsInterpretation.NORMAL: (90, 210, 120),
    AcsInterpretation.BORDERLINE: (230, 200, 80),
    AcsInterpretation.NOT_WITHIN_NORMAL_LIMITS: (230, 90, 90),
    AcsInterpretation.UNAVAILABLE: _DIM,
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def update(self) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def replace(self, screen: Screen) -> None:
        if self._screens:
            self._screens.pop()
        self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if self._screens:
            self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

    def render(self) -> None:
        if self._screens:
            self._screens[-1].render(self._surface)


class CptTestScreen:
    """Countdown, then the running test. Hands off to ResultsScreen at the end."""

    def __init__(
        self,
        app: App,
        *,
        config: CptConfig,
        subject: SubjectInfo,
        normative: NormativeSource | None,
        session_log: SqliteSessionLog | None = None,
        seed: int | None = None,
        scoring: ScoringConfig | None = None,
    ) -> None:
        self._app = app
        self._config = config
        self._scoring = scoring if scoring is not None else ScoringConfig()
        self._subject = subject
        self._normative = normative
        self._session_log = session_log

        self._clock = RealClock()
        self._timers = FrameTimerLoop(self._clock)
        self._scheduler = Scheduler(
            config=config,
            clock=self._clock,
            timers=self._timers,
            anticipatory_threshold_ms=self._scoring.anticipatory_threshold_ms,
        )
        self._scheduler.subscribe(self)
        if session_log is not None:
            self._scheduler.subscribe(session_log)

        rng = None if seed is None else SeededRng(seed)
        self._sequence = TrialSequenceGenerator(rng).generate(config.total_trials)

        self._countdown_until_ns = self._clock.now_ns() + COUNTDOWN_S * 1_000_000_000
        self._visible: StimulusType | None = None
        self._completed: TestComplete | None = None

        self._big_font = pygame.font.Font(None, 64)

    def on_trial_event(self, event: TrialEvent) -> None:
        if event.event_type is TrialEventType.STIMULUS_ONSET:
            self._visible = event.stimulus_type
        elif event.event_type in (TrialEventType.STIMULUS_OFFSET, TrialEventType.BUFFER_START):
            self._visible = None

    def on_test_complete(self, result: TestComplete) -> None:
        self._visible = None
        self._completed = result

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                if self._scheduler.is_running():
                    self._scheduler.stop()
                else:
                    self._app.quit()
                return
            if event.key == pygame.K_SPACE:
                self._respond()
            return
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self._respond()

    def update(self) -> None:
        if self._scheduler.state is SchedulerState.IDLE:
            if self._clock.now_ns() >= self._countdown_until_ns:
                self._scheduler.start(self._sequence)
            return
        self._timers.run_due()
        if self._completed is not None:
            self._timers.clear()
            self._app.replace(ResultsScreen(self._app, result=self._finish(self._completed)))

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(_BG)
        w, h = surface.get_size()
        state = self._scheduler.state

        if state is SchedulerState.IDLE:
            remaining_s = max(0, self._countdown_until_ns - self._clock.now_ns()) / 1e9
            text = f"The test will automatically start in: {int(remaining_s) + 1}"
            img = self._big_font.render(text, True, _FG)
            surface.blit(img, img.get_rect(center=(w // 2, h // 2 - 220)))
            duration = f"Test duration: {self._config.test_duration_minutes()} minutes"
            img = self._app.font.render(duration, True, _DIM)
            surface.blit(img, img.get_rect(center=(w // 2, h // 2 + 220)))
        elif state is SchedulerState.BUFFER:
            img = self._app.font.render("Get ready...", True, _DIM)
            surface.blit(img, img.get_rect(center=(w // 2, h // 2 - 190)))
        else:
            trial = self._scheduler.get_current_trial_index() + 1
            img = self._app.font.render(f"Trial {trial} / {self._config.total_trials}", True, _DIM)
            surface.blit(img, img.get_rect(center=(w // 2, h // 2 - 190)))

        square = pygame.Rect(0, 0, SQUARE_PX, SQUARE_PX)
        square.center = (w // 2, h // 2)
        pygame.draw.rect(surface, (255, 255, 255), square)

        if self._visible is not None:
            # Target in the top half, non-target in the bottom half.
            half = SQUARE_PX // 2
            y_off = (half - STIMULUS_PX) // 2
            top = square.top + y_off if self._visible is StimulusType.TARGET else square.top + half + y_off
            stim = pygame.Rect(square.centerx - STIMULUS_PX // 2, top, STIMULUS_PX, STIMULUS_PX)
            pygame.draw.rect(surface, (0, 0, 0), stim)

    def _respond(self) -> None:
        if not self._scheduler.is_running():
            return
        self._scheduler.record_response(self._clock.now_ns())

    def _finish(self, complete: TestComplete) -> SessionResult:
        result = session_result_from_completion(
            complete,
            config=self._config,
            sequence=self._sequence,
            subject=self._subject,
            normative=self._normative,
            scoring=self._scoring,
        )
        if self._session_log is not None:
            self._session_log.record_metrics(result.metrics)
        return result


class ResultsScreen:
    def __init__(self, app: App, *, result: SessionResult) -> None:
        self._app = app
        self._result = result
        self._small_font = pygame.font.Font(None, 28)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN and event.key in (pygame.K_ESCAPE, pygame.K_RETURN):
            self._app.quit()

    def update(self) -> None:
        return

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(_BG)
        m = self._result.metrics
        acs = "n/a" if m.acs is None else f"{m.acs:.2f}"
        pct = "n/a" if m.attention_percentile is None else f"{m.attention_percentile:.1f}%"

        def z(v: float | None) -> str:
            return "-" if v is None else f"{v:.2f}"

        elapsed_ms = self._result.complete.elapsed_time_ms
        title = "Test Stopped" if self._result.aborted else "Test Completed"
        lines = [
            f"Trials: {m.trial_count} / {self._result.config.total_trials}",
            f"Hits: {m.hits}   Omissions: {m.omissions} ({m.omission_percent:.1f}%)",
            f"Commissions: {m.commissions} ({m.commission_percent:.1f}%)   Correct rejections: {m.correct_rejections}",
            f"Mean RT: {m.mean_response_time_ms:.1f} ms   Variability: {m.variability:.1f}",
            f"D prime: {m.d_prime:.2f}   Anticipatory: {m.anticipatory_responses}",
            f"Z  RT: {z(m.z_scores.response_time)}  D': {z(m.z_scores.d_prime)}  Var: {z(m.z_scores.variability)}",
            f"Duration: {int(elapsed_ms // 60000)}m {int((elapsed_ms % 60000) // 1000):02d}s",
        ]
        if not m.validity.valid and m.validity.exclusion_reason:
            lines.append(f"Validity concern: {m.validity.exclusion_reason}")
        lines.append("")
        lines.append("Press Enter to exit.")

        y = 40
        surface.blit(self._app.font.render(title, True, _FG), (40, y))
        y += 50
        color = _INTERPRETATION_COLORS[m.acs_interpretation]
        surface.blit(self._app.font.render(f"ACS: {acs}  ({m.acs_interpretation.value})", True, color), (40, y))
        y += 36
        surface.blit(self._small_font.render(f"Attention percentile: {pct}", True, _DIM), (40, y))
        y += 44
        for line in lines:
            surface.blit(self._small_font.render(line, True, _FG), (40, y))
            y += 30


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: CptConfig | None = None,
    subject: SubjectInfo | None = None,
    normative_path: Path | None = None,
    db_path: Path | None = None,
    seed: int | None = None,
    total_trials: int | None = None,
    scoring: ScoringConfig | None = None,
) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    cfg = config if config is not None else CptConfig()
    if total_trials is not None:
        # Odd counts are rounded up so both halves stay the same length.
        cfg = replace(cfg, total_trials=normalize_total_trials(total_trials))

    normative = None if normative_path is None else load_normative_table(normative_path)
    session_log = None if db_path is None else SqliteSessionLog(db_path)

    pygame.init()
    pygame.display.set_caption("F.O.C.U.S. Attention Test")
    surface = pygame.display.set_mode(WINDOW_SIZE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    app.push(
        CptTestScreen(
            app,
            config=cfg,
            subject=subject if subject is not None else SubjectInfo(age=30, gender=Gender.MALE),
            normative=normative,
            session_log=session_log,
            seed=seed if seed is not None else _new_seed(),
            scoring=scoring,
        )
    )

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        pygame.quit()
        if session_log is not None:
            session_log.close()

    return 0
