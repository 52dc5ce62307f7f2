"""Unit tests for mindfulcode.core.summary — productivity score, labels, recommendations."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from mindfulcode.core.session.models import SessionSnapshot
from mindfulcode.core.summary import (
    Recommendation,
    format_duration,
    productivity_label,
    productivity_score,
    productivity_trend,
    recommendations,
    summarize,
)

MIN = 60_000


def _snap(
    *,
    duration: int = 40 * MIN,
    active: int | None = None,
    keystrokes: int = 2_000,
    flow: int = 20 * MIN,
    files: int = 3,
) -> SessionSnapshot:
    return SessionSnapshot(
        id="session_1_abcdefghi",
        start_time=datetime(2026, 1, 1, tzinfo=UTC),
        end_time=datetime(2026, 1, 1, 1, tzinfo=UTC),
        duration=duration,
        is_active=False,
        is_paused=False,
        paused_duration=0,
        files_worked_on=tuple(f"f{i}.py" for i in range(files)),
        keystrokes=keystrokes,
        active_time=duration if active is None else active,
        flow_state_detected=False,
        flow_state_duration=flow,
        interruptions=0,
    )


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("ms", "text"),
        [(0, "0m"), (59_999, "0m"), (42 * MIN, "42m"), (60 * MIN, "1h 0m"), (125 * MIN, "2h 5m")],
    )
    def test_format(self, ms: int, text: str) -> None:
        assert format_duration(ms) == text


class TestScore:
    def test_zero_duration(self) -> None:
        assert productivity_score(_snap(duration=0, active=0, flow=0)) == 0

    def test_weighted_blend(self) -> None:
        # active 1.0 * 0.4 + pace (50/min -> 0.5) * 0.3 + flow 0.5 * 0.3 = 0.7
        snap = _snap(duration=40 * MIN, keystrokes=2_000, flow=20 * MIN)
        assert productivity_score(snap) == 70

    def test_pace_capped(self) -> None:
        snap = _snap(duration=10 * MIN, keystrokes=100_000, flow=10 * MIN)
        assert productivity_score(snap) == 100

    @pytest.mark.parametrize(
        ("score", "label"),
        [(95, "Excellent"), (80, "Excellent"), (65, "Good"), (50, "Average"), (30, "Below Average"), (29, "Poor")],
    )
    def test_labels(self, score: int, label: str) -> None:
        assert productivity_label(score) == label


class TestRecommendations:
    def test_short_session(self) -> None:
        recs = recommendations(_snap(duration=10 * MIN, flow=5 * MIN), 70)
        assert recs[0] == Recommendation.LONGER_SESSIONS

    def test_long_session(self) -> None:
        recs = recommendations(_snap(duration=120 * MIN, flow=60 * MIN), 70)
        assert recs == [Recommendation.SHORTER_SESSIONS]

    def test_great_flow(self) -> None:
        recs = recommendations(_snap(duration=40 * MIN, flow=35 * MIN), 90)
        assert recs == [Recommendation.REPLICATE_FLOW]

    def test_capped_at_three(self) -> None:
        snap = _snap(duration=10 * MIN, active=2 * MIN, keystrokes=10, flow=0, files=15)
        recs = recommendations(snap, 10)
        assert recs == [
            Recommendation.LONGER_SESSIONS,
            Recommendation.MINIMIZE_DISTRACTIONS,
            Recommendation.CREATE_FLOW_ENVIRONMENT,
        ]

    def test_zero_duration_has_none(self) -> None:
        assert recommendations(_snap(duration=0, active=0, flow=0), 0) == []


class TestSummarize:
    def test_summary_fields(self) -> None:
        summary = summarize(_snap())
        assert summary.focus_score == 70
        assert summary.productivity == "Good"
        assert summary.keystrokes == 2_000
        assert summary.files_worked == 3
        assert summary.flow_state_time == 20 * MIN
        assert summary.recommendations == ()


class TestTrend:
    @pytest.mark.parametrize(
        ("current", "previous", "trend"),
        [(120, 100, "up"), (80, 100, "down"), (105, 100, "stable"), (10, 0, "up"), (0, 0, "stable")],
    )
    def test_trend(self, current: int, previous: int, trend: str) -> None:
        assert productivity_trend(current, previous) == trend
