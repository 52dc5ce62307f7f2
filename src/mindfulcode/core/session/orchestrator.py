"""
Session orchestrator.

The SessionOrchestrator owns at most one live Session and one FlowAnalyzer.
It is the only writer of derived session state (flow flag, flow duration,
interruptions) and the only caller of the persistence sink.

Two periodic timers drive it while a session is ACTIVE:

  tick      (default 5 s)   idle auto-pause, break reminder, flow detection
  autosave  (default 30 s)  best-effort snapshot write

Both timers are stopped on pause, auto-pause, end and dispose; a paused
session never ticks toward idle-timeout or autosave.

Invariants:
  - All methods run on the event loop thread; there is no locking.
  - Invalid transitions emit a WARNING event and leave state unchanged.
  - Snapshot writes outside ``end()`` are fire-and-forget; ``end()`` waits
    for in-flight writes, then awaits the terminal write.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from mindfulcode.core.clock import Clock, wall_clock_ms
from mindfulcode.core.config import MindfulCodeConfig
from mindfulcode.core.events import EventBus, EventType, SessionEvent, WarningReason
from mindfulcode.core.exceptions import SnapshotPersistError
from mindfulcode.core.flow.analyzer import FlowAnalyzer, FlowInsight, FlowMetrics
from mindfulcode.core.scheduler import Scheduler
from mindfulcode.core.session.models import Session, SessionSnapshot, SessionState

logger = structlog.get_logger()


class SnapshotSink(Protocol):
    """Persistence collaborator; ``Database`` implements it."""

    async def save_snapshot(self, snapshot: SessionSnapshot) -> None: ...


class SessionOrchestrator:
    """
    Lifecycle and timer orchestration for one coding session at a time.

    Lifecycle::

        orchestrator = SessionOrchestrator(sink=db, config=config)
        orchestrator.events.add_listener(presenter.handle)
        orchestrator.start()
        orchestrator.record_activity("/work/app.py")
        ...
        snapshot = await orchestrator.end()
    """

    def __init__(
        self,
        sink: SnapshotSink | None = None,
        *,
        config: MindfulCodeConfig | None = None,
        clock: Clock = wall_clock_ms,
        events: EventBus | None = None,
    ) -> None:
        self._sink = sink
        self._config = config or MindfulCodeConfig()
        self._clock = clock
        self.events = events or EventBus()

        self._session: Session | None = None
        self._analyzer = FlowAnalyzer(clock)
        self._pending_writes: set[asyncio.Task[None]] = set()
        self._last_break_ms: int | None = None
        self._last_flow_notice_ms: int | None = None

        session_cfg = self._config.session
        self._scheduler = Scheduler()
        self._scheduler.add("tick", session_cfg.tick_interval_seconds, self.tick)
        self._scheduler.add("autosave", session_cfg.autosave_interval_seconds, self.autosave)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_session(self) -> Session | None:
        return self._session

    @property
    def analyzer(self) -> FlowAnalyzer:
        return self._analyzer

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def snapshot(self) -> SessionSnapshot | None:
        return self._session.snapshot() if self._session else None

    def flow_metrics(self) -> FlowMetrics:
        return self._analyzer.analyze_current_flow_state(self._config.flow.window_ms)

    def insights(self) -> list[FlowInsight]:
        return self._analyzer.get_flow_state_insights(self._config.flow.window_ms)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start a new session, or resume the paused one. Returns False if rejected."""
        session = self._session
        if session is not None and session.state == SessionState.ACTIVE:
            self._warn(WarningReason.ALREADY_ACTIVE)
            return False
        if session is not None and session.is_paused:
            return self.resume()

        session = Session(clock=self._clock)
        session.start()
        self._session = session
        self._analyzer.reset()
        self._last_break_ms = None
        self._last_flow_notice_ms = None

        self._schedule_write(session.snapshot())
        self._scheduler.start_timers()
        logger.info("session_started", session_id=session.id)
        self._emit(EventType.STARTED)
        return True

    def pause(self) -> bool:
        session = self._session
        if session is None or session.state != SessionState.ACTIVE:
            self._warn(WarningReason.NO_ACTIVE_SESSION)
            return False

        session.pause()
        self._scheduler.stop_timers()
        logger.info("session_paused", session_id=session.id)
        self._emit(EventType.PAUSED)
        return True

    def resume(self) -> bool:
        session = self._session
        if session is None or not session.is_paused:
            self._warn(WarningReason.NO_PAUSED_SESSION)
            return False

        session.resume()
        self._scheduler.start_timers()
        logger.info("session_resumed", session_id=session.id)
        self._emit(EventType.RESUMED)
        return True

    async def end(self) -> SessionSnapshot | None:
        """
        End the live session and return its final snapshot.

        Returns None (with a WARNING event) when there is no session.  Raises
        SnapshotPersistError if the terminal write fails; the session is
        discarded either way.
        """
        session = self._session
        if session is None:
            self._warn(WarningReason.NO_SESSION_TO_END)
            return None

        session.end()
        self._scheduler.stop_timers()
        snapshot = session.snapshot()
        self._session = None

        # An in-flight autosave must not land after the terminal write.
        await self.drain()

        failure: Exception | None = None
        try:
            await self._write(snapshot)
        except Exception as exc:  # noqa: BLE001
            failure = exc
            self._report_write_failure(snapshot, exc, final=True)

        logger.info(
            "session_ended",
            session_id=snapshot.id,
            duration_ms=snapshot.duration,
            keystrokes=snapshot.keystrokes,
            files=len(snapshot.files_worked_on),
        )
        self._emit(EventType.ENDED, session_id=snapshot.id, snapshot=snapshot)

        if failure is not None:
            raise SnapshotPersistError(
                f"Final snapshot for {snapshot.id} was not persisted: {failure}", snapshot
            ) from failure
        return snapshot

    async def dispose(self) -> None:
        """Stop timers, end any live session, and wait for pending writes."""
        self._scheduler.stop_timers()
        if self._session is not None:
            try:
                await self.end()
            except SnapshotPersistError as exc:
                logger.error("dispose_final_write_lost", session_id=exc.snapshot.id)
        await self.drain()

    async def drain(self) -> None:
        """Wait for all fire-and-forget snapshot writes to settle."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def record_activity(self, file: str | None = None) -> None:
        session = self._session
        if session is None:
            return

        # A paused session rejects the event, so the waking keystroke reaches
        # neither the session counters nor the analyzer.
        if session.record_activity(file):
            self._analyzer.record_keystroke(file)

        if session.is_paused:
            # Activity means the user is back.
            session.resume()
            self._scheduler.start_timers()
            logger.info("session_auto_resumed", session_id=session.id)
            self._emit(EventType.AUTO_RESUMED)

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def tick(self) -> None:
        session = self._session
        if session is None:
            return

        snapshot = session.snapshot()
        self._emit(EventType.TICK, duration_ms=snapshot.duration, state=str(session.state))

        session_cfg = self._config.session
        if session.should_auto_pause(session_cfg.idle_timeout_ms):
            self._auto_pause(session)

        if session.state != SessionState.ACTIVE:
            self._analyzer.record_inactivity()
            return

        self._check_break(session)

        if self._config.flow.enabled:
            self._check_flow(session)

    def autosave(self) -> None:
        if self._session is not None:
            self._schedule_write(self._session.snapshot())

    # ------------------------------------------------------------------
    # Tick policies
    # ------------------------------------------------------------------

    def _auto_pause(self, session: Session) -> None:
        idle_minutes = self._config.session.idle_timeout_minutes
        session.record_interruption()
        session.pause()
        self._scheduler.stop_timers()
        logger.info("session_auto_paused", session_id=session.id, idle_minutes=idle_minutes)
        self._emit(EventType.AUTO_PAUSED, idle_minutes=idle_minutes)

    def _check_break(self, session: Session) -> None:
        session_cfg = self._config.session
        now = self._clock()
        if session.duration <= session_cfg.break_after_minutes * 60_000:
            return
        cooldown_ms = session_cfg.break_cooldown_minutes * 60_000
        if self._last_break_ms is not None and now - self._last_break_ms < cooldown_ms:
            return

        self._last_break_ms = now
        logger.info("break_suggested", session_id=session.id, duration_ms=session.duration)
        self._emit(EventType.BREAK_SUGGESTED, duration_ms=session.duration)

    def _check_flow(self, session: Session) -> None:
        flow_cfg = self._config.flow
        metrics = self._analyzer.analyze_current_flow_state(flow_cfg.window_ms)

        if not metrics.in_flow:
            if session.flow_state_detected:
                session.flow_state_detected = False
                logger.info("flow_exited", session_id=session.id)
                self._emit(EventType.FLOW_EXITED)
            return

        session.flow_state_duration = metrics.flow_duration
        if session.flow_state_detected:
            return

        session.flow_state_detected = True
        now = self._clock()
        cooldown_ms = flow_cfg.notify_cooldown_minutes * 60_000
        if self._last_flow_notice_ms is None or now - self._last_flow_notice_ms >= cooldown_ms:
            self._last_flow_notice_ms = now
            logger.info(
                "flow_entered",
                session_id=session.id,
                probability=round(metrics.flow_probability, 3),
                duration_ms=metrics.flow_duration,
            )
            self._emit(EventType.FLOW_ENTERED, duration_ms=metrics.flow_duration)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_write(self, snapshot: SessionSnapshot) -> None:
        if self._sink is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._best_effort_write(snapshot), name=f"persist:{snapshot.short_id()}"
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _best_effort_write(self, snapshot: SessionSnapshot) -> None:
        try:
            await self._write(snapshot)
        except Exception as exc:  # noqa: BLE001
            self._report_write_failure(snapshot, exc, final=False)

    async def _write(self, snapshot: SessionSnapshot) -> None:
        if self._sink is not None:
            await self._sink.save_snapshot(snapshot)

    def _report_write_failure(self, snapshot: SessionSnapshot, exc: Exception, *, final: bool) -> None:
        log = logger.error if final else logger.warning
        log("snapshot_persist_failed", session_id=snapshot.id, final=final, error=str(exc))
        self._emit(
            EventType.PERSIST_FAILED,
            session_id=snapshot.id,
            error=str(exc),
            final=final,
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event_type: EventType, *, session_id: str | None = None, **payload: Any) -> None:
        if session_id is None:
            session_id = self._session.id if self._session else ""
        self.events.emit(
            SessionEvent(type=event_type, ts_ms=self._clock(), session_id=session_id, payload=payload)
        )

    def _warn(self, reason: WarningReason) -> None:
        logger.warning("invalid_session_transition", reason=str(reason))
        self._emit(EventType.WARNING, reason=reason)
