"""
Mindful Code — coding-session tracking and flow-state detection.

Mindful Code watches the rhythm of your editing activity, keeps an accurate
account of active versus paused time, and estimates when you are in a flow
state so that breaks and interruptions can be timed around it.

Package layout (src/mindfulcode/):
  core/       — session state machine, flow analyzer, orchestrator, store
  ui/         — notification and status text rendering
  cli/        — Click CLI entry point
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
