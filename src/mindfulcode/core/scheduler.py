"""
Periodic timers for the session orchestrator.

Each orchestrator owns one ``Scheduler`` holding its named ``PeriodicTimer``
tasks (``tick`` and ``autosave``).  ``start_timers()`` / ``stop_timers()``
are paired on every lifecycle path, and cancellation is synchronous: once
``stop_timers()`` returns, no callback of the cancelled timers will run.

Timers must be started from inside a running event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Runs ``callback`` every ``interval_s`` seconds on the event loop."""

    def __init__(self, name: str, interval_s: float, callback: Callable[[], None]) -> None:
        if interval_s <= 0:
            raise ValueError(f"Timer {name!r}: interval must be positive, got {interval_s}")
        self.name = name
        self.interval_s = interval_s
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Timer %s callback failed", self.name)


class Scheduler:
    """Named set of periodic timers started and stopped together."""

    def __init__(self) -> None:
        self._timers: dict[str, PeriodicTimer] = {}

    def add(self, name: str, interval_s: float, callback: Callable[[], None]) -> None:
        if name in self._timers:
            raise ValueError(f"Timer {name!r} already registered")
        self._timers[name] = PeriodicTimer(name, interval_s, callback)

    @property
    def running(self) -> bool:
        return any(t.running for t in self._timers.values())

    def is_running(self, name: str) -> bool:
        timer = self._timers.get(name)
        return timer is not None and timer.running

    def start_timers(self) -> None:
        for timer in self._timers.values():
            timer.start()
        logger.debug("Timers started: %s", ", ".join(self._timers))

    def stop_timers(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        logger.debug("Timers stopped")

    @contextmanager
    def running_timers(self) -> Iterator[Scheduler]:
        """Run the timers for the duration of a ``with`` block, stopping them on any exit."""
        self.start_timers()
        try:
            yield self
        finally:
            self.stop_timers()
