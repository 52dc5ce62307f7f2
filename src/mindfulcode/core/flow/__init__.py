"""Flow-state analysis — windowed scoring of typing rhythm, focus and switching."""

from mindfulcode.core.flow.analyzer import (
    DEFAULT_METRICS,
    FileChange,
    FlowAnalyzer,
    FlowInsight,
    FlowMetrics,
    TypingPattern,
)

__all__ = [
    "DEFAULT_METRICS",
    "FileChange",
    "FlowAnalyzer",
    "FlowInsight",
    "FlowMetrics",
    "TypingPattern",
]
