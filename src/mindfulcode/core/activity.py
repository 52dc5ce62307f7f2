"""
ActivityGate — host-side throttle and file filter in front of the orchestrator.

Editors fire many events per second while typing.  The gate collapses them
to at most one activity per ``min_interval_ms`` and drops file identifiers
that are outside the workspace or match an exclude pattern (build output,
VCS internals, logs).  A dropped file still counts as activity, just
without a file.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from mindfulcode.core.clock import Clock, wall_clock_ms
from mindfulcode.core.constants import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_MIN_ACTIVITY_INTERVAL_MS


class ActivityGate:
    def __init__(
        self,
        workspace_roots: Iterable[str | Path] = (),
        *,
        min_interval_ms: int = DEFAULT_MIN_ACTIVITY_INTERVAL_MS,
        exclude_patterns: Sequence[str] = DEFAULT_EXCLUDE_PATTERNS,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self._roots = [Path(r).expanduser().resolve() for r in workspace_roots]
        self._min_interval_ms = min_interval_ms
        self._exclude = [re.compile(p) for p in exclude_patterns]
        self._clock = clock
        self._last_accepted: int | None = None

    def should_track_file(self, path: str) -> bool:
        if not self._roots:
            return False
        resolved = Path(path).expanduser().resolve()
        root = next((r for r in self._roots if resolved.is_relative_to(r)), None)
        if root is None:
            return False
        # Patterns apply below the workspace root only.
        text = resolved.relative_to(root).as_posix()
        return not any(p.search(text) for p in self._exclude)

    def admit(self, file: str | None = None) -> tuple[bool, str | None]:
        """
        Return ``(accepted, file_to_forward)``.

        ``accepted`` is False when the event falls inside the throttle
        interval; ``file_to_forward`` is None when the file is filtered out.
        """
        now = self._clock()
        if self._last_accepted is not None and now - self._last_accepted < self._min_interval_ms:
            return False, None
        self._last_accepted = now

        if file and self.should_track_file(file):
            return True, file
        return True, None
