"""
FlowAnalyzer — sliding-window flow-state scoring from activity events.

Two bounded buffers feed the analysis:

  typing_patterns  — every keystroke (and inactivity marker), last 1000
  file_changes     — one entry per change of file, last 50

``analyze_current_flow_state()`` restricts both buffers to a trailing window
(default 10 minutes) and fuses four sub-scores into a flow probability:

  typing_rhythm      0.25   steadiness of inter-keystroke intervals
  focus_consistency  0.35   evenness of activity across 20 time slots
  context_switching  0.25   fewer file switches per minute scores higher
  error_rate         0.15   quality score; rapid-burst corrections lower it

The weights are fixed and sum to 1; every sub-score is clamped to [0, 1], so
the probability is always in [0, 1].  A probability above 0.7 counts as flow.

Small windows (fewer than 10 patterns) return a fixed neutral metric set
instead of a score computed from noise.

All work is O(buffer size) per call.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from enum import StrEnum

import structlog

from mindfulcode.core.clock import Clock, wall_clock_ms
from mindfulcode.core.constants import (
    DEFAULT_FLOW_WINDOW_MS,
    FLOW_GAP_MS,
    FLOW_THRESHOLD,
    FOCUS_TIME_SLOTS,
    MAX_FILE_CHANGES,
    MAX_TYPING_PATTERNS,
    MIN_ERROR_KEYSTROKES,
    MIN_FLOW_KEYSTROKES,
    MIN_RHYTHM_KEYSTROKES,
    MIN_WINDOW_PATTERNS,
    RAPID_BURST_LENGTH,
    RAPID_KEYSTROKE_MS,
)

logger = structlog.get_logger()

_WEIGHTS: dict[str, float] = {
    "typing_rhythm": 0.25,
    "focus_consistency": 0.35,
    "context_switching": 0.25,
    "error_rate": 0.15,
}


@dataclass(frozen=True)
class TypingPattern:
    timestamp: int
    is_keystroke: bool
    file: str | None = None


@dataclass(frozen=True)
class FileChange:
    timestamp: int
    file: str


@dataclass(frozen=True)
class FlowMetrics:
    """Flow analysis result for one window."""

    typing_rhythm: float
    focus_consistency: float
    context_switching: float
    error_rate: float  # quality score: 1 = few corrections
    flow_probability: float
    flow_duration: int  # ms

    @property
    def in_flow(self) -> bool:
        return self.flow_probability > FLOW_THRESHOLD

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)


DEFAULT_METRICS = FlowMetrics(
    typing_rhythm=0.0,
    focus_consistency=0.0,
    context_switching=1.0,
    error_rate=0.5,
    flow_probability=0.0,
    flow_duration=0,
)


class FlowInsight(StrEnum):
    """Advisories derived from low sub-scores; values are the default English text."""

    STEADY_RHYTHM = "Try to maintain a steady typing rhythm for better flow"
    MINIMIZE_INTERRUPTIONS = "Minimize interruptions to maintain consistent focus"
    REDUCE_FILE_SWITCHING = "Reduce file switching to stay in the flow zone"
    SLOW_DOWN = "Slow down slightly to reduce errors and maintain flow"
    GREAT_CONDITIONS = "Great flow state conditions! Keep up the momentum"


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


class FlowAnalyzer:
    """
    Bounded-memory activity buffers plus windowed flow scoring.

    One analyzer lives alongside one session; ``reset()`` clears it when a new
    session starts.
    """

    def __init__(
        self,
        clock: Clock = wall_clock_ms,
        *,
        max_patterns: int = MAX_TYPING_PATTERNS,
        max_file_changes: int = MAX_FILE_CHANGES,
    ) -> None:
        self._clock = clock
        self._patterns: deque[TypingPattern] = deque(maxlen=max_patterns)
        self._file_changes: deque[FileChange] = deque(maxlen=max_file_changes)

    @property
    def typing_patterns(self) -> list[TypingPattern]:
        return list(self._patterns)

    @property
    def file_changes(self) -> list[FileChange]:
        return list(self._file_changes)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_keystroke(self, file: str | None = None) -> None:
        now = self._clock()
        self._patterns.append(TypingPattern(timestamp=now, is_keystroke=True, file=file))
        if file and (not self._file_changes or self._file_changes[-1].file != file):
            self._file_changes.append(FileChange(timestamp=now, file=file))

    def record_inactivity(self) -> None:
        self._patterns.append(TypingPattern(timestamp=self._clock(), is_keystroke=False))

    def reset(self) -> None:
        self._patterns.clear()
        self._file_changes.clear()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_current_flow_state(self, window_ms: int = DEFAULT_FLOW_WINDOW_MS) -> FlowMetrics:
        now = self._clock()
        window_start = now - window_ms

        patterns = [p for p in self._patterns if window_start <= p.timestamp <= now]
        changes = [c for c in self._file_changes if window_start <= c.timestamp <= now]

        if len(patterns) < MIN_WINDOW_PATTERNS:
            return DEFAULT_METRICS

        keystrokes = [p.timestamp for p in patterns if p.is_keystroke]

        typing_rhythm = _clamp(self._typing_rhythm(keystrokes))
        focus_consistency = _clamp(self._focus_consistency(patterns))
        context_switching = _clamp(self._context_switching(changes, window_ms))
        error_rate = _clamp(self._error_rate(keystrokes))

        flow_probability = _clamp(
            typing_rhythm * _WEIGHTS["typing_rhythm"]
            + focus_consistency * _WEIGHTS["focus_consistency"]
            + context_switching * _WEIGHTS["context_switching"]
            + error_rate * _WEIGHTS["error_rate"]
        )

        flow_duration = (
            self._flow_duration(keystrokes) if flow_probability > FLOW_THRESHOLD else 0
        )

        metrics = FlowMetrics(
            typing_rhythm=typing_rhythm,
            focus_consistency=focus_consistency,
            context_switching=context_switching,
            error_rate=error_rate,
            flow_probability=flow_probability,
            flow_duration=flow_duration,
        )
        logger.debug("flow_analyzed", patterns=len(patterns), **metrics.to_dict())
        return metrics

    def is_in_flow_state(self, window_ms: int = DEFAULT_FLOW_WINDOW_MS) -> bool:
        return self.analyze_current_flow_state(window_ms).flow_probability > FLOW_THRESHOLD

    def get_flow_state_insights(self, window_ms: int = DEFAULT_FLOW_WINDOW_MS) -> list[FlowInsight]:
        metrics = self.analyze_current_flow_state(window_ms)
        insights: list[FlowInsight] = []

        if metrics.typing_rhythm < 0.5:
            insights.append(FlowInsight.STEADY_RHYTHM)
        if metrics.focus_consistency < 0.6:
            insights.append(FlowInsight.MINIMIZE_INTERRUPTIONS)
        if metrics.context_switching < 0.7:
            insights.append(FlowInsight.REDUCE_FILE_SWITCHING)
        if metrics.error_rate < 0.7:
            insights.append(FlowInsight.SLOW_DOWN)

        if not insights:
            insights.append(FlowInsight.GREAT_CONDITIONS)
        return insights

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    @staticmethod
    def _intervals(timestamps: Sequence[int]) -> list[int]:
        return [b - a for a, b in zip(timestamps, timestamps[1:])]

    def _typing_rhythm(self, keystrokes: Sequence[int]) -> float:
        """1 - coefficient of variation of inter-keystroke intervals."""
        if len(keystrokes) < MIN_RHYTHM_KEYSTROKES:
            return 0.0

        intervals = self._intervals(keystrokes)
        mean = sum(intervals) / len(intervals)
        if mean <= 0:
            return 0.0
        variance = sum((i - mean) ** 2 for i in intervals) / len(intervals)
        return max(0.0, 1.0 - math.sqrt(variance) / mean)

    def _focus_consistency(self, patterns: Sequence[TypingPattern]) -> float:
        """
        Evenness of keystrokes across FOCUS_TIME_SLOTS equal slots spanning the
        windowed patterns: 1 - variance(per-slot counts) / total**2.

        The keystroke at the very end of the span would index one past the
        last slot; it is counted in the last slot rather than dropped.
        """
        first = patterns[0].timestamp
        span = patterns[-1].timestamp - first
        slot_ms = span / FOCUS_TIME_SLOTS

        counts = [0] * FOCUS_TIME_SLOTS
        for p in patterns:
            if not p.is_keystroke:
                continue
            index = int((p.timestamp - first) // slot_ms) if slot_ms > 0 else 0
            counts[min(index, FOCUS_TIME_SLOTS - 1)] += 1

        total = sum(counts)
        if total == 0:
            return 0.0
        expected = total / FOCUS_TIME_SLOTS
        variance = sum((c - expected) ** 2 for c in counts) / FOCUS_TIME_SLOTS
        return max(0.0, 1.0 - variance / total**2)

    @staticmethod
    def _context_switching(changes: Sequence[FileChange], window_ms: int) -> float:
        if len(changes) <= 1 or window_ms <= 0:
            return 1.0

        window_minutes = window_ms / 60_000
        switches_per_minute = (len(changes) - 1) / window_minutes

        # 0-2 switches/min scale linearly from 1 to 0.5, then drop off faster
        if switches_per_minute <= 2:
            return 1.0 - switches_per_minute / 4
        return max(0.0, 0.5 - (switches_per_minute - 2) / 10)

    def _error_rate(self, keystrokes: Sequence[int]) -> float:
        """
        Rapid-correction heuristic returned as a quality score.

        A burst is a run of at least RAPID_BURST_LENGTH consecutive intervals
        shorter than RAPID_KEYSTROKE_MS.  A burst still open at the end of the
        window counts too, so a window of nothing but rapid keystrokes scores
        0 rather than a perfect 1.
        """
        if len(keystrokes) < MIN_ERROR_KEYSTROKES:
            return 0.5

        bursts = 0
        quick = 0
        for interval in self._intervals(keystrokes):
            if interval < RAPID_KEYSTROKE_MS:
                quick += 1
                continue
            if quick >= RAPID_BURST_LENGTH:
                bursts += 1
            quick = 0
        if quick >= RAPID_BURST_LENGTH:
            bursts += 1

        error_rate = min(1.0, bursts / (len(keystrokes) / 50))
        return 1.0 - error_rate

    @staticmethod
    def _flow_duration(keystrokes: Sequence[int]) -> int:
        """Longest run of keystrokes whose gaps never exceed FLOW_GAP_MS."""
        if len(keystrokes) < MIN_FLOW_KEYSTROKES:
            return 0

        longest = 0
        run_start = keystrokes[0]
        last = keystrokes[0]
        for ts in keystrokes[1:]:
            if ts - last > FLOW_GAP_MS:
                longest = max(longest, last - run_start)
                run_start = ts
            last = ts
        return max(longest, last - run_start)
