"""
Session summaries: productivity score, label, and recommendations.

Pure functions over a final ``SessionSnapshot``.  The score is a weighted
blend (0-100):

  40%  active ratio        active_time / duration
  30%  typing pace         min(keystrokes per minute / 100, 1)
  30%  flow ratio          flow_state_duration / duration
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from mindfulcode.core.session.models import SessionSnapshot

Trend = Literal["up", "down", "stable"]


class Recommendation(StrEnum):
    LONGER_SESSIONS = "Try longer focused sessions (25-45 minutes) for deeper work"
    SHORTER_SESSIONS = "Consider shorter sessions with breaks to maintain focus"
    MINIMIZE_DISTRACTIONS = "Minimize distractions to increase active coding time"
    CREATE_FLOW_ENVIRONMENT = "Create a distraction-free environment to achieve flow state"
    REPLICATE_FLOW = "Great flow state! Try to replicate these conditions"
    USE_FOCUS_TECHNIQUES = "Consider using focus techniques like Pomodoro timer"
    FEWER_FILES = "Try focusing on fewer files per session for deeper work"


@dataclass(frozen=True)
class SessionSummary:
    duration: int  # ms
    focus_score: int
    productivity: str
    keystrokes: int
    files_worked: int
    flow_state_time: int  # ms
    recommendations: tuple[Recommendation, ...]


def format_duration(ms: int) -> str:
    """``"1h 5m"`` above an hour, ``"42m"`` below."""
    minutes = ms // 60_000
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m"
    return f"{minutes}m"


def productivity_score(snapshot: SessionSnapshot) -> int:
    if snapshot.duration <= 0:
        return 0

    active_ratio = snapshot.active_time / snapshot.duration
    keystrokes_per_minute = snapshot.keystrokes / (snapshot.duration / 60_000)
    flow_ratio = snapshot.flow_state_duration / snapshot.duration

    score = active_ratio * 0.4 + min(keystrokes_per_minute / 100, 1) * 0.3 + flow_ratio * 0.3
    return max(0, min(100, round(score * 100)))


def productivity_label(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 65:
        return "Good"
    if score >= 50:
        return "Average"
    if score >= 30:
        return "Below Average"
    return "Poor"


def recommendations(snapshot: SessionSnapshot, focus_score: int) -> list[Recommendation]:
    """At most three recommendations, most important first."""
    recs: list[Recommendation] = []
    if snapshot.duration <= 0:
        return recs

    session_minutes = snapshot.duration / 60_000
    active_ratio = snapshot.active_time / snapshot.duration
    flow_ratio = snapshot.flow_state_duration / snapshot.duration

    if session_minutes < 25:
        recs.append(Recommendation.LONGER_SESSIONS)
    elif session_minutes > 90:
        recs.append(Recommendation.SHORTER_SESSIONS)

    if active_ratio < 0.6:
        recs.append(Recommendation.MINIMIZE_DISTRACTIONS)

    if flow_ratio < 0.3:
        recs.append(Recommendation.CREATE_FLOW_ENVIRONMENT)
    elif flow_ratio > 0.7:
        recs.append(Recommendation.REPLICATE_FLOW)

    if focus_score < 50:
        recs.append(Recommendation.USE_FOCUS_TECHNIQUES)

    if len(snapshot.files_worked_on) > 10:
        recs.append(Recommendation.FEWER_FILES)

    return recs[:3]


def summarize(snapshot: SessionSnapshot) -> SessionSummary:
    score = productivity_score(snapshot)
    return SessionSummary(
        duration=snapshot.duration,
        focus_score=score,
        productivity=productivity_label(score),
        keystrokes=snapshot.keystrokes,
        files_worked=len(snapshot.files_worked_on),
        flow_state_time=snapshot.flow_state_duration,
        recommendations=tuple(recommendations(snapshot, score)),
    )


def productivity_trend(current_ms: int, previous_ms: int, *, tolerance: float = 0.1) -> Trend:
    """Compare coding time of two equal periods; within ±tolerance counts as stable."""
    if previous_ms <= 0:
        return "up" if current_ms > 0 else "stable"
    change = (current_ms - previous_ms) / previous_ms
    if change > tolerance:
        return "up"
    if change < -tolerance:
        return "down"
    return "stable"
