"""SQLite session log sink.

Records the TrialEvent stream as it is emitted so a crashed or aborted run
still leaves its partial log on disk. Writes are committed at stimulus
offsets (the quiet part of a trial) and at completion rather than per event.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

from .scoring import AttentionMetrics
from .trials import StimulusType, TestComplete, TrialEvent, TrialEventType

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                created_at_utc TEXT NOT NULL,
                completed_at_utc TEXT,
                elapsed_time_ns INTEGER,
                aborted INTEGER
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trial_event (
                id INTEGER PRIMARY KEY,
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                trial_index INTEGER NOT NULL,
                stimulus_type TEXT NOT NULL,
                event_type TEXT NOT NULL,
                timestamp_ns INTEGER NOT NULL,
                response_correct INTEGER
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metric (
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (session_id, key)
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_trial_event_session_seq ON trial_event(session_id, seq);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteSessionLog:
    """TrialEventListener that appends every event to an SQLite database.

    A new session row is opened on each BUFFER_START.
    """

    def __init__(self, db_path: Path) -> None:
        self._conn = open_db(db_path)
        self._session_id: int | None = None
        self._seq = 0

    @property
    def session_id(self) -> int | None:
        return self._session_id

    def on_trial_event(self, event: TrialEvent) -> None:
        if event.event_type is TrialEventType.BUFFER_START:
            self._open_session()
        if self._session_id is None:
            logger.warning("trial event before buffer start; not recorded")
            return

        self._conn.execute(
            """
            INSERT INTO trial_event(
                session_id, seq, trial_index, stimulus_type, event_type, timestamp_ns, response_correct
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                self._session_id,
                self._seq,
                int(event.trial_index),
                str(event.stimulus_type.value),
                str(event.event_type.value),
                int(event.timestamp_ns),
                None if event.response_correct is None else int(event.response_correct),
            ),
        )
        self._seq += 1
        if event.event_type is TrialEventType.STIMULUS_OFFSET:
            self._conn.commit()

    def on_test_complete(self, result: TestComplete) -> None:
        if self._session_id is None:
            return
        with self._conn:
            self._conn.execute(
                "UPDATE session SET completed_at_utc = ?, elapsed_time_ns = ?, aborted = ? WHERE id = ?",
                (_utc_now_iso(), int(result.elapsed_time_ns), 1 if result.aborted else 0, self._session_id),
            )
        logger.info("session %d log closed (%d events)", self._session_id, self._seq)

    def record_metrics(self, metrics: AttentionMetrics, session_id: int | None = None) -> None:
        sid = self._session_id if session_id is None else session_id
        if sid is None:
            raise ValueError("no session to attach metrics to")
        with self._conn:
            for k, v in metric_rows(metrics).items():
                self._conn.execute(
                    "INSERT OR REPLACE INTO metric(session_id, key, value) VALUES (?, ?, ?)",
                    (sid, k, v),
                )

    def close(self) -> None:
        self._conn.commit()
        self._conn.close()

    def _open_session(self) -> None:
        with self._conn:
            cur = self._conn.execute("INSERT INTO session(created_at_utc) VALUES (?)", (_utc_now_iso(),))
        self._session_id = int(cur.lastrowid)
        self._seq = 0


def _fmt(value: float | None, places: int = 6) -> str:
    return "" if value is None else f"{value:.{places}f}"


def metric_rows(metrics: AttentionMetrics) -> dict[str, str]:
    return {
        "trial_count": str(metrics.trial_count),
        "hits": str(metrics.hits),
        "omissions": str(metrics.omissions),
        "commissions": str(metrics.commissions),
        "correct_rejections": str(metrics.correct_rejections),
        "anticipatory_responses": str(metrics.anticipatory_responses),
        "multiple_responses": str(metrics.multiple_responses),
        "omission_percent": _fmt(metrics.omission_percent),
        "commission_percent": _fmt(metrics.commission_percent),
        "mean_rt_ms": _fmt(metrics.mean_response_time_ms, 3),
        "first_half_mean_rt_ms": _fmt(metrics.first_half_mean_response_time_ms, 3),
        "variability_ms": _fmt(metrics.variability, 3),
        "d_prime": _fmt(metrics.d_prime),
        "z_response_time": _fmt(metrics.z_scores.response_time),
        "z_d_prime": _fmt(metrics.z_scores.d_prime),
        "z_variability": _fmt(metrics.z_scores.variability),
        "acs": _fmt(metrics.acs),
        "acs_interpretation": metrics.acs_interpretation.value,
        "valid": "1" if metrics.validity.valid else "0",
    }


def load_session_events(db_path: Path, session_id: int) -> list[TrialEvent]:
    """Read one session's log back in emission order."""

    conn = open_db(db_path)
    try:
        rows = conn.execute(
            """
            SELECT trial_index, stimulus_type, event_type, timestamp_ns, response_correct
            FROM trial_event WHERE session_id = ? ORDER BY seq
            """,
            (int(session_id),),
        ).fetchall()
    finally:
        conn.close()

    return [
        TrialEvent(
            trial_index=int(r[0]),
            stimulus_type=StimulusType(r[1]),
            event_type=TrialEventType(r[2]),
            timestamp_ns=int(r[3]),
            response_correct=None if r[4] is None else bool(r[4]),
        )
        for r in rows
    ]
