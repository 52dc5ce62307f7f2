"""
Unit tests for mindfulcode.core.session.orchestrator — SessionOrchestrator.

Covers:
  - lifecycle transitions and WARNING events for invalid ones
  - idle auto-pause / auto-resume and interruption counting
  - break reminders with cooldown
  - flow entered / exited and the entered-notice rate limit
  - timers running only while ACTIVE
  - best-effort autosave vs. the awaited terminal write
  - listener failure isolation

Timer callbacks are invoked directly; the FakeClock drives all time.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mindfulcode.core.config import MindfulCodeConfig
from mindfulcode.core.events import EventType, SessionEvent, WarningReason
from mindfulcode.core.exceptions import SnapshotPersistError
from mindfulcode.core.session.models import SessionState
from mindfulcode.core.session.orchestrator import SessionOrchestrator

IDLE_MS = 5 * 60_000


def _orchestrator(clock, sink=None, **config) -> tuple[SessionOrchestrator, list[SessionEvent]]:
    orch = SessionOrchestrator(sink, config=MindfulCodeConfig(**config), clock=clock)
    events: list[SessionEvent] = []
    orch.events.add_listener(events.append)
    return orch, events


def _of(events: list[SessionEvent], event_type: EventType) -> list[SessionEvent]:
    return [e for e in events if e.type == event_type]


def _type(orch: SessionOrchestrator, clock, n: int, interval_ms: int = 150, file: str = "app.py") -> None:
    for _ in range(n):
        clock.advance(interval_ms)
        orch.record_activity(file)


def _sink(save=None) -> MagicMock:
    sink = MagicMock()
    sink.save_snapshot = AsyncMock(side_effect=save)
    return sink


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_creates_active_session(self, clock) -> None:
        orch, events = _orchestrator(clock)
        assert orch.start() is True
        session = orch.current_session
        assert session is not None
        assert session.state == SessionState.ACTIVE
        assert _of(events, EventType.STARTED)[0].session_id == session.id
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_start_twice_warns(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        first_id = orch.current_session.id
        assert orch.start() is False
        assert orch.current_session.id == first_id
        (warning,) = _of(events, EventType.WARNING)
        assert warning.payload["reason"] == WarningReason.ALREADY_ACTIVE
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_start_resumes_paused_session(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        session_id = orch.current_session.id
        orch.pause()
        assert orch.start() is True
        assert orch.current_session.id == session_id
        assert orch.current_session.state == SessionState.ACTIVE
        assert _of(events, EventType.RESUMED)
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_pause_without_session_warns(self, clock) -> None:
        orch, events = _orchestrator(clock)
        assert orch.pause() is False
        assert events[-1].payload["reason"] == WarningReason.NO_ACTIVE_SESSION

    @pytest.mark.asyncio
    async def test_pause_when_paused_warns(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        orch.pause()
        assert orch.pause() is False
        assert events[-1].payload["reason"] == WarningReason.NO_ACTIVE_SESSION
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_resume_when_active_warns(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        assert orch.resume() is False
        assert events[-1].payload["reason"] == WarningReason.NO_PAUSED_SESSION
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_end_without_session_warns(self, clock) -> None:
        orch, events = _orchestrator(clock)
        assert await orch.end() is None
        assert events[-1].type == EventType.WARNING
        assert events[-1].payload["reason"] == WarningReason.NO_SESSION_TO_END

    @pytest.mark.asyncio
    async def test_end_returns_final_snapshot(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        _type(orch, clock, 3, file="a.py")
        clock.advance(60_000)
        snap = await orch.end()
        assert snap is not None
        assert snap.end_time is not None
        assert snap.keystrokes == 3
        assert snap.duration == 60_000 + 3 * 150
        assert not snap.is_active
        assert orch.current_session is None
        (ended,) = _of(events, EventType.ENDED)
        assert ended.payload["snapshot"] == snap

    @pytest.mark.asyncio
    async def test_start_after_end_is_a_fresh_session(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        orch.start()
        _type(orch, clock, 20)
        old = await orch.end()
        clock.advance(1)
        orch.start()
        assert orch.current_session.id != old.id
        assert orch.current_session.keystrokes == 0
        assert orch.analyzer.typing_patterns == []
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_activity_without_session_is_ignored(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.record_activity("a.py")
        assert orch.current_session is None
        assert events == []


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class TestTimers:
    @pytest.mark.asyncio
    async def test_timers_run_only_while_active(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        assert not orch.scheduler.running

        orch.start()
        assert orch.scheduler.is_running("tick")
        assert orch.scheduler.is_running("autosave")

        orch.pause()
        assert not orch.scheduler.running

        orch.resume()
        assert orch.scheduler.running

        await orch.end()
        assert not orch.scheduler.running

    @pytest.mark.asyncio
    async def test_dispose_ends_live_session(self, clock) -> None:
        sink = _sink()
        orch, events = _orchestrator(clock, sink)
        orch.start()
        await orch.dispose()
        assert orch.current_session is None
        assert not orch.scheduler.running
        assert _of(events, EventType.ENDED)
        assert sink.save_snapshot.await_args.args[0].end_time is not None

    @pytest.mark.asyncio
    async def test_tick_emits_tick_event(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        clock.advance(10_000)
        orch.record_activity()
        orch.tick()
        (tick,) = _of(events, EventType.TICK)
        assert tick.payload == {"duration_ms": 10_000, "state": "active"}
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_tick_without_session_is_noop(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.tick()
        orch.autosave()
        assert events == []


# ---------------------------------------------------------------------------
# Idle auto-pause / auto-resume
# ---------------------------------------------------------------------------


class TestIdle:
    @pytest.mark.asyncio
    async def test_auto_pause_after_idle_timeout(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        clock.advance(IDLE_MS + 1)
        orch.tick()

        session = orch.current_session
        assert session.is_paused
        assert session.interruptions == 1
        assert not orch.scheduler.running
        (auto,) = _of(events, EventType.AUTO_PAUSED)
        assert auto.payload["idle_minutes"] == 5
        assert not orch.analyzer.typing_patterns[-1].is_keystroke

    @pytest.mark.asyncio
    async def test_no_auto_pause_at_exact_timeout(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        clock.advance(IDLE_MS)
        orch.tick()
        assert orch.current_session.state == SessionState.ACTIVE
        assert not _of(events, EventType.AUTO_PAUSED)
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_idle_timeout_from_config(self, clock) -> None:
        orch, events = _orchestrator(clock, session={"idle_timeout_minutes": 1})
        orch.start()
        clock.advance(60_001)
        orch.tick()
        assert orch.current_session.is_paused
        assert _of(events, EventType.AUTO_PAUSED)[0].payload["idle_minutes"] == 1

    @pytest.mark.asyncio
    async def test_activity_auto_resumes(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        clock.advance(IDLE_MS + 1)
        orch.tick()
        clock.advance(60_000)

        orch.record_activity("a.py")

        session = orch.current_session
        assert session.state == SessionState.ACTIVE
        # The waking event itself is not counted.
        assert session.keystrokes == 0
        assert session.paused_duration == 60_000
        assert orch.scheduler.running
        assert len(_of(events, EventType.AUTO_RESUMED)) == 1

        orch.record_activity("a.py")
        assert session.keystrokes == 1
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_waking_event_not_sent_to_analyzer(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        orch.start()
        clock.advance(IDLE_MS + 1)
        orch.tick()
        clock.advance(1_000)

        orch.record_activity("a.py")
        assert not orch.analyzer.typing_patterns[-1].is_keystroke
        assert orch.analyzer.file_changes == []

        clock.advance(1_000)
        orch.record_activity("a.py")
        last = orch.analyzer.typing_patterns[-1]
        assert last.is_keystroke
        assert last.file == "a.py"
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_manual_pause_is_not_an_interruption(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()
        orch.pause()
        clock.advance(IDLE_MS * 3)
        orch.tick()
        assert orch.current_session.interruptions == 0
        assert not _of(events, EventType.AUTO_PAUSED)
        assert not _of(events, EventType.BREAK_SUGGESTED)

    @pytest.mark.asyncio
    async def test_paused_time_excluded_from_duration(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        orch.start()
        clock.advance(IDLE_MS + 1)
        orch.tick()
        clock.advance(IDLE_MS)
        snap = orch.snapshot()
        assert snap.duration == IDLE_MS + 1


# ---------------------------------------------------------------------------
# Break reminders
# ---------------------------------------------------------------------------


class TestBreaks:
    @pytest.mark.asyncio
    async def test_break_suggested_after_45_minutes_with_cooldown(self, clock) -> None:
        orch, events = _orchestrator(clock)
        orch.start()

        clock.advance(45 * 60_000)
        orch.record_activity()
        orch.tick()
        assert not _of(events, EventType.BREAK_SUGGESTED)

        clock.advance(60_000)
        orch.record_activity()
        orch.tick()
        orch.tick()
        breaks = _of(events, EventType.BREAK_SUGGESTED)
        assert len(breaks) == 1
        assert breaks[0].payload["duration_ms"] == 46 * 60_000

        clock.advance(29 * 60_000)
        orch.record_activity()
        orch.tick()
        assert len(_of(events, EventType.BREAK_SUGGESTED)) == 1

        clock.advance(2 * 60_000)
        orch.record_activity()
        orch.tick()
        assert len(_of(events, EventType.BREAK_SUGGESTED)) == 2
        await orch.dispose()


# ---------------------------------------------------------------------------
# Flow detection
# ---------------------------------------------------------------------------


class TestFlow:
    @pytest.mark.asyncio
    async def test_flow_entered_and_exited(self, clock) -> None:
        orch, events = _orchestrator(clock, flow={"window_minutes": 1})
        orch.start()
        _type(orch, clock, 50)
        orch.tick()

        session = orch.current_session
        assert session.flow_state_detected
        assert session.flow_state_duration == 49 * 150
        (entered,) = _of(events, EventType.FLOW_ENTERED)
        assert entered.payload["duration_ms"] == 49 * 150

        orch.tick()
        assert len(_of(events, EventType.FLOW_ENTERED)) == 1

        clock.advance(2 * 60_000)
        orch.record_activity("app.py")
        orch.tick()
        assert not session.flow_state_detected
        assert len(_of(events, EventType.FLOW_EXITED)) == 1
        # Duration of the last flow run is kept.
        assert session.flow_state_duration == 49 * 150
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_flow_entered_notice_rate_limited(self, clock) -> None:
        orch, events = _orchestrator(clock, flow={"window_minutes": 1})
        orch.start()
        _type(orch, clock, 50)
        orch.tick()

        clock.advance(2 * 60_000)
        orch.record_activity("app.py")
        orch.tick()

        _type(orch, clock, 50)
        orch.tick()
        assert orch.current_session.flow_state_detected
        assert len(_of(events, EventType.FLOW_ENTERED)) == 1
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_flow_disabled(self, clock) -> None:
        orch, events = _orchestrator(clock, flow={"enabled": False})
        orch.start()
        _type(orch, clock, 50)
        orch.tick()
        assert not orch.current_session.flow_state_detected
        assert not _of(events, EventType.FLOW_ENTERED)
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_metrics_and_insights_queries(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        orch.start()
        _type(orch, clock, 50)
        assert orch.flow_metrics().in_flow
        assert orch.insights()
        await orch.dispose()


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    @pytest.mark.asyncio
    async def test_start_writes_initial_snapshot(self, clock) -> None:
        sink = _sink()
        orch, _ = _orchestrator(clock, sink)
        orch.start()
        await orch.drain()
        sink.save_snapshot.assert_awaited_once()
        assert sink.save_snapshot.await_args.args[0].id == orch.current_session.id
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_autosave_writes_current_snapshot(self, clock) -> None:
        sink = _sink()
        orch, _ = _orchestrator(clock, sink)
        orch.start()
        orch.record_activity("a.py")
        orch.autosave()
        await orch.drain()
        assert sink.save_snapshot.await_count == 2
        assert sink.save_snapshot.await_args.args[0].keystrokes == 1
        await orch.dispose()

    @pytest.mark.asyncio
    async def test_autosave_failure_is_reported_not_raised(self, clock) -> None:
        sink = _sink(OSError("disk full"))
        orch, events = _orchestrator(clock, sink)
        orch.start()
        orch.autosave()
        await orch.drain()

        failures = _of(events, EventType.PERSIST_FAILED)
        assert len(failures) == 2
        assert all(f.payload["final"] is False for f in failures)
        assert failures[0].payload["error"] == "disk full"
        assert orch.current_session.state == SessionState.ACTIVE

        # dispose() swallows the terminal failure after reporting it
        await orch.dispose()
        assert orch.current_session is None
        assert _of(events, EventType.PERSIST_FAILED)[-1].payload["final"] is True

    @pytest.mark.asyncio
    async def test_final_write_failure_raises_with_snapshot(self, clock) -> None:
        async def _save(snapshot):
            if snapshot.end_time is not None:
                raise OSError("read-only filesystem")

        orch, events = _orchestrator(clock, _sink(_save))
        orch.start()
        session_id = orch.current_session.id

        with pytest.raises(SnapshotPersistError) as exc_info:
            await orch.end()

        assert exc_info.value.snapshot.id == session_id
        assert exc_info.value.snapshot.end_time is not None
        assert orch.current_session is None
        assert not orch.scheduler.running

        kinds = [e.type for e in events]
        assert kinds.index(EventType.PERSIST_FAILED) < kinds.index(EventType.ENDED)
        assert _of(events, EventType.PERSIST_FAILED)[0].payload["final"] is True

    @pytest.mark.asyncio
    async def test_terminal_write_lands_last(self, clock) -> None:
        saved = []

        async def _save(snapshot):
            if snapshot.end_time is None:
                await asyncio.sleep(0.01)
            saved.append(snapshot)

        orch, _ = _orchestrator(clock, _sink(_save))
        orch.start()
        orch.autosave()
        await orch.end()

        assert len(saved) == 3
        assert saved[-1].end_time is not None
        assert all(s.end_time is None for s in saved[:-1])

    @pytest.mark.asyncio
    async def test_no_sink_is_fine(self, clock) -> None:
        orch, _ = _orchestrator(clock)
        orch.start()
        orch.autosave()
        snap = await orch.end()
        assert snap is not None


# ---------------------------------------------------------------------------
# Listener isolation
# ---------------------------------------------------------------------------


class TestListeners:
    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_lifecycle(self, clock) -> None:
        orch = SessionOrchestrator(clock=clock)

        def _boom(event: SessionEvent) -> None:
            raise RuntimeError("listener bug")

        received: list[SessionEvent] = []
        orch.events.add_listener(_boom)
        orch.events.add_listener(received.append)

        assert orch.start() is True
        clock.advance(IDLE_MS + 1)
        orch.tick()
        assert orch.current_session.is_paused
        assert EventType.AUTO_PAUSED in [e.type for e in received]
        await orch.dispose()
