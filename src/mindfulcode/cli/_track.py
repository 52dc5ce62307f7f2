"""
mindfulcode track — drive a session from a line-oriented activity feed.

Protocol (one event per line on stdin):

  <path>      activity on that file
  <empty>     activity without a file
  :pause      pause the session
  :resume     resume a paused session
  :start      resume a paused session (warns while one is active)
  :status     print the status line
  :flow       print current flow metrics and insights
  :end        end the session and exit

EOF and SIGINT end the session as well.  Lines are read by a daemon thread
and handed to the event loop, so the periodic tick and autosave timers keep
running while stdin is quiet.
"""

from __future__ import annotations

import asyncio
import os
import signal
import threading
from typing import TextIO

import structlog
from rich.console import Console
from rich.markup import escape

from mindfulcode.core.activity import ActivityGate
from mindfulcode.core.config import MindfulCodeConfig, load_config_or_default
from mindfulcode.core.exceptions import ConfigError, SnapshotPersistError
from mindfulcode.core.session.orchestrator import SessionOrchestrator
from mindfulcode.core.store.database import Database
from mindfulcode.ui.notifications import NotificationPresenter

logger = structlog.get_logger()

_EOF = None


def _start_reader(stream: TextIO, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> None:
    def _pump() -> None:
        try:
            for line in stream:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\r\n"))
            loop.call_soon_threadsafe(queue.put_nowait, _EOF)
        except RuntimeError:
            # Event loop already closed.
            return

    threading.Thread(target=_pump, name="mindfulcode-stdin", daemon=True).start()


async def run_track(
    orchestrator: SessionOrchestrator,
    gate: ActivityGate,
    presenter: NotificationPresenter,
    stream: TextIO,
) -> int:
    """Run until ``:end``, EOF, or SIGINT.  Returns a process exit code."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_reader(stream, loop, queue)

    try:
        loop.add_signal_handler(signal.SIGINT, queue.put_nowait, _EOF)
    except (NotImplementedError, RuntimeError):
        # Windows / non-main thread: Ctrl-C surfaces as KeyboardInterrupt instead.
        pass

    orchestrator.start()
    try:
        while True:
            line = await queue.get()
            if line is _EOF or line == ":end":
                break
            _dispatch(line, orchestrator, gate, presenter)

        try:
            await orchestrator.end()
        except SnapshotPersistError as exc:
            logger.error("final_snapshot_lost", session_id=exc.snapshot.id)
            return 1
        return 0
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        await orchestrator.dispose()


def _dispatch(
    line: str,
    orchestrator: SessionOrchestrator,
    gate: ActivityGate,
    presenter: NotificationPresenter,
) -> None:
    command = line.strip()
    match command:
        case ":pause":
            orchestrator.pause()
        case ":resume":
            orchestrator.resume()
        case ":start":
            orchestrator.start()
        case ":status":
            presenter.show_status(orchestrator.snapshot())
        case ":flow":
            presenter.show_flow(orchestrator.flow_metrics(), orchestrator.insights())
        case _ if command.startswith(":"):
            logger.warning("unknown_track_command", command=command)
        case _:
            accepted, file = gate.admit(command or None)
            if accepted:
                orchestrator.record_activity(file)


def build_orchestrator(
    config: MindfulCodeConfig,
    db: Database,
    console: Console,
) -> tuple[SessionOrchestrator, NotificationPresenter]:
    orchestrator = SessionOrchestrator(db, config=config)
    presenter = NotificationPresenter(
        console, show_notifications=config.notifications.show_notifications
    )
    orchestrator.events.add_listener(presenter.handle)
    return orchestrator, presenter


def cmd_track(
    *,
    workspaces: list[str],
    flow_enabled: bool,
    stream: TextIO,
    console: Console,
) -> int:
    try:
        config = load_config_or_default()
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        return 1

    if not flow_enabled:
        config = config.model_copy(
            update={"flow": config.flow.model_copy(update={"enabled": False})}
        )

    db = Database(config.db_path)
    db.connect()
    try:
        orchestrator, presenter = build_orchestrator(config, db, console)
        gate = ActivityGate(
            workspaces or [os.getcwd()],
            min_interval_ms=config.tracking.min_interval_ms,
            exclude_patterns=config.tracking.exclude_patterns,
        )
        return asyncio.run(run_track(orchestrator, gate, presenter, stream))
    finally:
        db.close()
