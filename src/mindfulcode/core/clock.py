"""
Clock sources.

Every time-dependent component (Session, FlowAnalyzer, orchestrator,
ActivityGate) reads time through one injected callable returning integer
milliseconds since the epoch.  Using the same source everywhere keeps
``end_time - start_time - paused_duration`` from ever going negative.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return time.time_ns() // 1_000_000


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def datetime_to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)
