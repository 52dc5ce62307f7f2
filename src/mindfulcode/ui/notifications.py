"""
Notification presenter — renders session events as user-facing messages.

The core only emits ``SessionEvent`` records; this module owns every string
the user sees.  ``NotificationPresenter.handle`` is an ``EventBus`` listener:

    presenter = NotificationPresenter(console, show_notifications=True)
    orchestrator.events.add_listener(presenter.handle)

Warnings are always shown; informational messages are muted when
``show_notifications`` is False.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

from mindfulcode.core.events import EventType, SessionEvent, WarningReason
from mindfulcode.core.flow.analyzer import FlowInsight, FlowMetrics
from mindfulcode.core.session.models import SessionSnapshot
from mindfulcode.core.summary import SessionSummary, format_duration, summarize

_WARNING_TEXT: dict[WarningReason, str] = {
    WarningReason.ALREADY_ACTIVE: "Session already active",
    WarningReason.NO_ACTIVE_SESSION: "No active session to pause",
    WarningReason.NO_PAUSED_SESSION: "No paused session to resume",
    WarningReason.NO_SESSION_TO_END: "No session to end",
}


def break_message(duration_ms: int) -> str:
    hours = duration_ms // 3_600_000
    if hours >= 2:
        return "You've been coding for over 2 hours. Take a longer break and stretch!"
    if hours >= 1:
        return "You've been focused for over an hour. A short break would help refresh your mind."
    return "Consider taking a short break to maintain focus and prevent burnout."


def flow_message(duration_ms: int) -> str:
    return f"Flow state detected! You've been in flow for {format_duration(duration_ms)}. Keep going!"


def status_text(snapshot: SessionSnapshot | None) -> str:
    """One-line status, as shown in an editor status bar."""
    if snapshot is None:
        return "Start Session"
    minutes = round(snapshot.duration / 60_000)
    if snapshot.is_paused:
        return f"{minutes}m (paused)"
    flow = " · in flow" if snapshot.flow_state_detected else ""
    return f"{minutes}m{flow}"


def summary_lines(summary: SessionSummary) -> list[str]:
    lines = [
        f"Session Complete: {format_duration(summary.duration)}",
        f"Focus Score: {summary.focus_score}% ({summary.productivity})",
        f"{summary.keystrokes} keystrokes across {summary.files_worked} files",
        f"Flow State: {format_duration(summary.flow_state_time)}",
    ]
    if summary.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  • {rec}" for rec in summary.recommendations)
    return lines


class NotificationPresenter:
    def __init__(self, console: Console | None = None, *, show_notifications: bool = True) -> None:
        self._console = console or Console(stderr=True)
        self._show = show_notifications

    def handle(self, event: SessionEvent) -> None:
        if event.type == EventType.WARNING:
            reason = event.payload.get("reason")
            text = _WARNING_TEXT.get(reason, str(reason)) if reason else "Invalid session action"
            self._console.print(f"[yellow]⚠ {text}[/yellow]")
            return

        if event.type == EventType.PERSIST_FAILED:
            style = "bold red" if event.payload.get("final") else "red"
            self._console.print(
                f"[{style}]Could not save session {event.session_id}: "
                f"{escape(str(event.payload.get('error', 'unknown error')))}[/{style}]"
            )
            return

        if not self._show:
            return

        match event.type:
            case EventType.STARTED:
                self._console.print("[green]Coding session started![/green]")
            case EventType.PAUSED:
                self._console.print("Session paused")
            case EventType.RESUMED:
                self._console.print("Session resumed")
            case EventType.AUTO_PAUSED:
                minutes = event.payload.get("idle_minutes", 0)
                self._console.print(
                    f"Session auto-paused after {minutes} minutes of inactivity"
                )
            case EventType.AUTO_RESUMED:
                self._console.print("Session auto-resumed")
            case EventType.BREAK_SUGGESTED:
                self._console.print(
                    f"[yellow]{break_message(event.payload.get('duration_ms', 0))}[/yellow]"
                )
            case EventType.FLOW_ENTERED:
                self._console.print(
                    f"[cyan]{flow_message(event.payload.get('duration_ms', 0))}[/cyan]"
                )
            case EventType.ENDED:
                snapshot = event.payload.get("snapshot")
                if snapshot is not None:
                    for line in summary_lines(summarize(snapshot)):
                        self._console.print(line)
            case _:
                pass

    def show_flow(self, metrics: FlowMetrics, insights: list[FlowInsight]) -> None:
        self._console.print(
            f"Flow probability {metrics.flow_probability:.0%} "
            f"(rhythm {metrics.typing_rhythm:.2f}, focus {metrics.focus_consistency:.2f}, "
            f"switching {metrics.context_switching:.2f}, quality {metrics.error_rate:.2f})"
        )
        for insight in insights:
            self._console.print(f"  • {insight}")

    def show_status(self, snapshot: SessionSnapshot | None) -> None:
        self._console.print(status_text(snapshot))
