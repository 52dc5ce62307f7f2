"""
SQLite-backed session store.

One table, ``sessions``, holds the latest snapshot of every session.  Writes
are upserts keyed on the session id: autosaves overwrite the row while the
session is live and the terminal write from ``end()`` leaves the final record.
``created_at`` is set on first insert only; ``updated_at`` on every write.

Thread safety:
  WAL mode is enabled and the connection is opened with
  check_same_thread=False, because ``save_snapshot()`` runs the blocking
  write in a worker thread via ``asyncio.to_thread``.  Writes are serialised
  with a lock.

Schema versioning:
  PRAGMA user_version and the migrations module; see migrations.py.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog

from mindfulcode.core.session.models import SessionSnapshot

logger = structlog.get_logger()


@dataclass(frozen=True)
class SessionStats:
    """Aggregates over completed sessions in a trailing window of days."""

    total_sessions: int
    total_coding_time: int  # ms
    total_flow_time: int  # ms
    average_session_length: float  # ms
    total_keystrokes: int
    unique_files_worked: int


class Database:
    """SQLite persistence layer for session snapshots."""

    def __init__(self, db_path: Path) -> None:
        self._path = db_path
        self._conn: sqlite3.Connection | None = None
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> None:
        from mindfulcode.core.store.migrations import run_migrations

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        run_migrations(self._conn, self._path)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_session(self, snapshot: SessionSnapshot) -> None:
        now = _iso(datetime.now(UTC))
        with self._write_lock:
            self._db.execute(
                """
                INSERT INTO sessions (
                    id, start_time, end_time, duration, is_active, is_paused,
                    paused_duration, files_worked_on, keystrokes, active_time,
                    flow_state_detected, flow_state_duration, interruptions,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    start_time          = excluded.start_time,
                    end_time            = excluded.end_time,
                    duration            = excluded.duration,
                    is_active           = excluded.is_active,
                    is_paused           = excluded.is_paused,
                    paused_duration     = excluded.paused_duration,
                    files_worked_on     = excluded.files_worked_on,
                    keystrokes          = excluded.keystrokes,
                    active_time         = excluded.active_time,
                    flow_state_detected = excluded.flow_state_detected,
                    flow_state_duration = excluded.flow_state_duration,
                    interruptions       = excluded.interruptions,
                    updated_at          = excluded.updated_at
                """,
                (
                    snapshot.id,
                    _iso(snapshot.start_time),
                    _iso(snapshot.end_time) if snapshot.end_time else None,
                    snapshot.duration,
                    int(snapshot.is_active),
                    int(snapshot.is_paused),
                    snapshot.paused_duration,
                    json.dumps(list(snapshot.files_worked_on)),
                    snapshot.keystrokes,
                    snapshot.active_time,
                    int(snapshot.flow_state_detected),
                    snapshot.flow_state_duration,
                    snapshot.interruptions,
                    now,
                    now,
                ),
            )
            self._db.commit()

    async def save_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Async sink entry point used by the orchestrator."""
        await asyncio.to_thread(self.save_session, snapshot)

    def delete_session(self, session_id: str) -> bool:
        with self._write_lock:
            cur = self._db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            self._db.commit()
        return cur.rowcount > 0

    def delete_old_sessions(self, days_to_keep: int = 90, *, now: datetime | None = None) -> int:
        cutoff = _cutoff(days_to_keep, now)
        with self._write_lock:
            cur = self._db.execute("DELETE FROM sessions WHERE start_time < ?", (cutoff,))
            self._db.commit()
        logger.info("old_sessions_deleted", count=cur.rowcount, days_to_keep=days_to_keep)
        return cur.rowcount

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> SessionSnapshot | None:
        row = self._db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return _row_to_snapshot(row) if row else None

    def find_sessions(self, fragment: str) -> list[SessionSnapshot]:
        """Sessions whose id starts or ends with *fragment* (short-id lookup)."""
        escaped = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self._db.execute(
            "SELECT * FROM sessions WHERE id LIKE ? ESCAPE '\\' OR id LIKE ? ESCAPE '\\'"
            " ORDER BY start_time DESC",
            (f"{escaped}%", f"%{escaped}"),
        ).fetchall()
        return [_row_to_snapshot(r) for r in rows]

    def list_recent_sessions(
        self, days: int = 30, *, now: datetime | None = None
    ) -> list[SessionSnapshot]:
        rows = self._db.execute(
            "SELECT * FROM sessions WHERE start_time >= ? ORDER BY start_time DESC",
            (_cutoff(days, now),),
        ).fetchall()
        return [_row_to_snapshot(r) for r in rows]

    def session_stats(self, days: int = 7, *, now: datetime | None = None) -> SessionStats:
        """Aggregate completed sessions that started in [now - days, now)."""
        now = now or datetime.now(UTC)
        cutoff = _cutoff(days, now)
        until = _iso(now)
        row = self._db.execute(
            """
            SELECT COUNT(*)                 AS total_sessions,
                   SUM(duration)            AS total_coding_time,
                   SUM(flow_state_duration) AS total_flow_time,
                   AVG(duration)            AS average_session_length,
                   SUM(keystrokes)          AS total_keystrokes
              FROM sessions
             WHERE start_time >= ? AND start_time < ? AND end_time IS NOT NULL
            """,
            (cutoff, until),
        ).fetchone()

        files: set[str] = set()
        for (raw,) in self._db.execute(
            "SELECT files_worked_on FROM sessions"
            " WHERE start_time >= ? AND start_time < ? AND end_time IS NOT NULL",
            (cutoff, until),
        ):
            try:
                files.update(json.loads(raw))
            except (TypeError, json.JSONDecodeError):
                logger.warning("corrupt_files_column_skipped")

        return SessionStats(
            total_sessions=row["total_sessions"] or 0,
            total_coding_time=row["total_coding_time"] or 0,
            total_flow_time=row["total_flow_time"] or 0,
            average_session_length=row["average_session_length"] or 0.0,
            total_keystrokes=row["total_keystrokes"] or 0,
            unique_files_worked=len(files),
        )


def _iso(dt: datetime) -> str:
    # Fixed-width UTC text so that string comparison in SQL orders correctly.
    return dt.astimezone(UTC).isoformat(timespec="milliseconds")


def _cutoff(days: int, now: datetime | None) -> str:
    return _iso((now or datetime.now(UTC)) - timedelta(days=days))


def _row_to_snapshot(row: sqlite3.Row) -> SessionSnapshot:
    return SessionSnapshot(
        id=row["id"],
        start_time=datetime.fromisoformat(row["start_time"]),
        end_time=datetime.fromisoformat(row["end_time"]) if row["end_time"] else None,
        duration=row["duration"],
        is_active=bool(row["is_active"]),
        is_paused=bool(row["is_paused"]),
        paused_duration=row["paused_duration"],
        files_worked_on=tuple(json.loads(row["files_worked_on"])),
        keystrokes=row["keystrokes"],
        active_time=row["active_time"],
        flow_state_detected=bool(row["flow_state_detected"]),
        flow_state_duration=row["flow_state_duration"],
        interruptions=row["interruptions"],
    )
