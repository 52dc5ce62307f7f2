"""
Session lifecycle events.

The core never formats user-facing text.  It emits typed ``SessionEvent``
records on an ``EventBus``; the presentation layer (``mindfulcode.ui``) and any
host integration subscribe with ``add_listener`` and decide how to render them.

Payload keys per event type:

  started          —
  paused           —
  resumed          —
  ended            snapshot (SessionSnapshot)
  auto_paused      idle_minutes (int)
  auto_resumed     —
  break_suggested  duration_ms (int)
  flow_entered     duration_ms (int)
  flow_exited      —
  tick             duration_ms (int), state (str)
  warning          reason (WarningReason)
  persist_failed   error (str), final (bool)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger()


class EventType(StrEnum):
    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    ENDED = "ended"
    AUTO_PAUSED = "auto_paused"
    AUTO_RESUMED = "auto_resumed"
    BREAK_SUGGESTED = "break_suggested"
    FLOW_ENTERED = "flow_entered"
    FLOW_EXITED = "flow_exited"
    TICK = "tick"
    WARNING = "warning"
    PERSIST_FAILED = "persist_failed"


class WarningReason(StrEnum):
    """Invalid lifecycle transitions; state is left unchanged."""

    ALREADY_ACTIVE = "already_active"
    NO_ACTIVE_SESSION = "no_active_session"
    NO_PAUSED_SESSION = "no_paused_session"
    NO_SESSION_TO_END = "no_session_to_end"


@dataclass(frozen=True)
class SessionEvent:
    type: EventType
    ts_ms: int
    session_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[SessionEvent], None]


class EventBus:
    """Synchronous fan-out of session events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def add_listener(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    def emit(self, event: SessionEvent) -> None:
        # A failing listener must not break the tick or lifecycle call that emitted.
        for fn in list(self._listeners):
            try:
                fn(event)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "event_listener_failed",
                    event_type=str(event.type),
                    listener=getattr(fn, "__qualname__", repr(fn)),
                    error=str(exc),
                )
