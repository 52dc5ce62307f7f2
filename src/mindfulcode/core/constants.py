"""Mindful Code constants: filesystem layout, intervals, and heuristic thresholds."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Platform-specific data directory
# ---------------------------------------------------------------------------


def _default_data_dir() -> Path:
    """
    Return the platform-appropriate Mindful Code data directory.

    macOS : ~/Library/Application Support/mindfulcode
    Linux : ~/.config/mindfulcode
    Other : ~/.mindfulcode
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "mindfulcode"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "mindfulcode"
    return Path.home() / ".mindfulcode"


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

CONFIG_FILENAME = "config.toml"
DB_FILENAME = "mindfulcode.db"

# ---------------------------------------------------------------------------
# Orchestrator timing
# ---------------------------------------------------------------------------

DEFAULT_IDLE_TIMEOUT_MINUTES = 5
DEFAULT_TICK_INTERVAL_SECONDS = 5.0
DEFAULT_AUTOSAVE_INTERVAL_SECONDS = 30.0
BREAK_AFTER_MINUTES = 45  # session length before the first break reminder
BREAK_COOLDOWN_MINUTES = 30  # minimum gap between break reminders
FLOW_NOTIFY_COOLDOWN_MINUTES = 20  # minimum gap between "entering flow" signals

# ---------------------------------------------------------------------------
# Flow analysis
# ---------------------------------------------------------------------------

MAX_TYPING_PATTERNS = 1000
MAX_FILE_CHANGES = 50
DEFAULT_FLOW_WINDOW_MS = 10 * 60 * 1000
FLOW_THRESHOLD = 0.7
MIN_WINDOW_PATTERNS = 10  # below this the window is statistically meaningless
MIN_RHYTHM_KEYSTROKES = 5
MIN_ERROR_KEYSTROKES = 20
MIN_FLOW_KEYSTROKES = 10
FOCUS_TIME_SLOTS = 20
RAPID_KEYSTROKE_MS = 100
RAPID_BURST_LENGTH = 3
FLOW_GAP_MS = 30_000  # a pause longer than this breaks a flow run

# ---------------------------------------------------------------------------
# Activity gate
# ---------------------------------------------------------------------------

DEFAULT_MIN_ACTIVITY_INTERVAL_MS = 1000
DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    r"node_modules",
    r"\.git",
    r"\.vscode",
    r"dist",
    r"build",
    r"coverage",
    r"\.log$",
    r"\.tmp$",
    r"\.temp$",
)

# ---------------------------------------------------------------------------
# Store retention
# ---------------------------------------------------------------------------

DEFAULT_HISTORY_DAYS = 30
DEFAULT_STATS_DAYS = 7
DEFAULT_RETENTION_DAYS = 90
