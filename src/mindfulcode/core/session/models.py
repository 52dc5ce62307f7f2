"""
Session domain models.

A Session is one stretch of coding work, from ``start()`` to ``end()``, with
any number of pause/resume cycles in between.  It keeps its own duration
accounting; flow detection and interruption counting are written into it by
the orchestrator.

Durations are integer milliseconds read from a single injected clock.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from mindfulcode.core.clock import Clock, ms_to_datetime, wall_clock_ms

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _generate_session_id(now_ms: int) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"session_{now_ms}_{suffix}"


class SessionState(StrEnum):
    IDLE = "idle"  # created, never started
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable, fully recomputed copy of a session's observable fields."""

    id: str
    start_time: datetime
    end_time: datetime | None
    duration: int
    is_active: bool
    is_paused: bool
    paused_duration: int
    files_worked_on: tuple[str, ...]
    keystrokes: int
    active_time: int
    flow_state_detected: bool
    flow_state_duration: int
    interruptions: int

    def to_dict(self) -> dict[str, Any]:
        """Persisted/JSON shape; timestamps as ISO-8601 strings."""
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "is_active": self.is_active,
            "is_paused": self.is_paused,
            "paused_duration": self.paused_duration,
            "files_worked_on": list(self.files_worked_on),
            "keystrokes": self.keystrokes,
            "active_time": self.active_time,
            "flow_state_detected": self.flow_state_detected,
            "flow_state_duration": self.flow_state_duration,
            "interruptions": self.interruptions,
        }

    def short_id(self) -> str:
        return self.id[-9:]


@dataclass
class Session:
    """One coding session and its duration accounting."""

    clock: Clock = field(default=wall_clock_ms, repr=False)
    id: str = ""
    state: SessionState = SessionState.IDLE
    start_time: int = 0
    end_time: int | None = None
    duration: int = 0
    paused_duration: int = 0
    files_worked_on: list[str] = field(default_factory=list)
    keystrokes: int = 0
    active_time: int = 0
    flow_state_detected: bool = False
    flow_state_duration: int = 0
    interruptions: int = 0

    _pause_start_time: int | None = field(default=None, repr=False)
    _last_activity_time: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        now = self.clock()
        if not self.id:
            self.id = _generate_session_id(now)
        if not self.start_time:
            self.start_time = now
        if not self._last_activity_time:
            self._last_activity_time = now

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.ACTIVE, SessionState.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.state == SessionState.PAUSED

    @property
    def is_terminal(self) -> bool:
        return self.state == SessionState.ENDED

    @property
    def last_activity_time(self) -> int:
        return self._last_activity_time

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_terminal:
            return
        now = self.clock()
        self.state = SessionState.ACTIVE
        self._pause_start_time = None
        self.start_time = now
        self._last_activity_time = now

    def pause(self) -> None:
        if self.state != SessionState.ACTIVE:
            return
        self.state = SessionState.PAUSED
        self._pause_start_time = self.clock()
        self._update_duration()

    def resume(self) -> None:
        if self.state != SessionState.PAUSED:
            return
        now = self.clock()
        if self._pause_start_time is not None:
            self.paused_duration += max(0, now - self._pause_start_time)
        self._pause_start_time = None
        self.state = SessionState.ACTIVE
        self._last_activity_time = now

    def end(self) -> None:
        if self.is_terminal:
            return
        if self.is_paused:
            self.resume()
        self.state = SessionState.ENDED
        self.end_time = self.clock()
        self._update_duration()

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def record_activity(self, file: str | None = None) -> bool:
        """Count one activity event; returns False when the session is not accepting."""
        if self.state != SessionState.ACTIVE:
            return False

        self._last_activity_time = self.clock()
        self.keystrokes += 1
        if file and file not in self.files_worked_on:
            self.files_worked_on.append(file)
        return True

    def record_interruption(self) -> None:
        self.interruptions += 1

    def idle_ms(self) -> int:
        return max(0, self.clock() - self._last_activity_time)

    def should_auto_pause(self, idle_timeout_ms: int) -> bool:
        if self.state != SessionState.ACTIVE:
            return False
        return self.clock() - self._last_activity_time > idle_timeout_ms

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        self._update_duration()
        return SessionSnapshot(
            id=self.id,
            start_time=ms_to_datetime(self.start_time),
            end_time=ms_to_datetime(self.end_time) if self.end_time is not None else None,
            duration=self.duration,
            is_active=self.is_active,
            is_paused=self.is_paused,
            paused_duration=self.paused_duration,
            files_worked_on=tuple(self.files_worked_on),
            keystrokes=self.keystrokes,
            active_time=self.active_time,
            flow_state_detected=self.flow_state_detected,
            flow_state_duration=self.flow_state_duration,
            interruptions=self.interruptions,
        )

    def _update_duration(self) -> None:
        now = self.end_time if self.end_time is not None else self.clock()
        elapsed = max(0, now - self.start_time)
        paused = self.paused_duration
        if self._pause_start_time is not None:
            paused += max(0, now - self._pause_start_time)
        self.duration = min(elapsed, max(0, elapsed - paused))
        self.active_time = self.duration
