"""Shared fixtures for the Mindful Code test suite."""

from __future__ import annotations

import logging

import pytest
import structlog

T0 = 1_718_000_000_000  # 2024-06-10T06:13:20Z


class FakeClock:
    """Manually advanced millisecond clock; pass it anywhere a ``Clock`` is expected."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep tests away from the real config file and database."""
    for var in (
        "MINDFULCODE_CONFIG",
        "MINDFULCODE_LOG_LEVEL",
        "MINDFULCODE_DB_PATH",
        "MINDFULCODE_IDLE_TIMEOUT_MINUTES",
        "MINDFULCODE_FLOW_ENABLED",
        "MINDFULCODE_SHOW_NOTIFICATIONS",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo root-logger and structlog configuration done by in-process CLI runs."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()
