"""
Schema migrations for the Mindful Code SQLite database.

Uses PRAGMA user_version as the version counter (atomic, no extra table).
Each migration is an idempotent function that upgrades from version N to N+1.

Migration contract:
  - Each migration MUST be idempotent — safe to re-run after a mid-flight crash.
  - After a migration succeeds, PRAGMA user_version is bumped and committed.
  - If a migration fails, the transaction is rolled back and the error is
    surfaced with the DB path so the user can take recovery action.

Version history:
  0 → 1: sessions table with start/end/created indexes
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path

import structlog

logger = structlog.get_logger()

LATEST_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Individual migrations
# ---------------------------------------------------------------------------


def _migrate_0_to_1(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            id                  TEXT PRIMARY KEY,
            start_time          TEXT NOT NULL,
            end_time            TEXT,
            duration            INTEGER NOT NULL DEFAULT 0,
            is_active           INTEGER NOT NULL DEFAULT 0,
            is_paused           INTEGER NOT NULL DEFAULT 0,
            paused_duration     INTEGER NOT NULL DEFAULT 0,
            files_worked_on     TEXT NOT NULL DEFAULT '[]',
            keystrokes          INTEGER NOT NULL DEFAULT 0,
            active_time         INTEGER NOT NULL DEFAULT 0,
            flow_state_detected INTEGER NOT NULL DEFAULT 0,
            flow_state_duration INTEGER NOT NULL DEFAULT 0,
            interruptions       INTEGER NOT NULL DEFAULT 0,
            created_at          TEXT NOT NULL,
            updated_at          TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_end_time ON sessions(end_time)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_created_at ON sessions(created_at)")


_MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {
    0: _migrate_0_to_1,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_user_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return row[0] if row else 0


def _set_user_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(f"PRAGMA user_version = {version}")  # noqa: S608


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run_migrations(conn: sqlite3.Connection, db_path: Path) -> None:
    """
    Run all pending schema migrations on *conn*.

    Raises ``RuntimeError`` with a user-friendly message (including the DB
    path) if any migration fails.
    """
    current = get_user_version(conn)

    if current > LATEST_SCHEMA_VERSION:
        raise RuntimeError(
            f"Database {db_path} has schema version {current}, but this build of "
            f"Mindful Code only supports up to version {LATEST_SCHEMA_VERSION}. "
            f"Please upgrade Mindful Code or remove the database file."
        )

    if current == LATEST_SCHEMA_VERSION:
        return

    logger.info("migration_starting", from_version=current, to_version=LATEST_SCHEMA_VERSION)

    for from_version in range(current, LATEST_SCHEMA_VERSION):
        migration = _MIGRATIONS.get(from_version)
        if migration is None:
            raise RuntimeError(
                f"No migration registered for v{from_version} → v{from_version + 1}. "
                f"Database: {db_path}"
            )

        target = from_version + 1
        try:
            migration(conn)
            _set_user_version(conn, target)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            raise RuntimeError(
                f"Schema migration v{from_version} → v{target} failed: {exc}\n"
                f"Database path: {db_path}\n"
                f"Recovery: delete (or rename) the database file and restart.\n"
                f"  mv '{db_path}' '{db_path}.bak'"
            ) from exc

    logger.info("migration_complete", version=get_user_version(conn))
