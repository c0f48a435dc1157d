"""
Tests for ScanSupervisor: worker startup, signal fan-out and reaping.
"""

import asyncio
import logging
from unittest.mock import patch

import pytest

from scandaemon.core.control_channel import ControlChannel
from scandaemon.core.events.scanner_events import MatchEvent
from scandaemon.core.events.supervisor_events import (
    ControlSignalBroadcastEvent,
    WorkerExitedEvent,
)
from scandaemon.core.exceptions import WorkerCreationError
from scandaemon.domains.file_discovery.pattern_worker import PatternWorker
from scandaemon.domains.supervision.supervisor import ScanSupervisor
from scandaemon.models import EXIT_CANCELLED, EXIT_FAILURE, ControlSignal, WorkerState


def all_sleeping(supervisor: ScanSupervisor) -> bool:
    return all(
        h.worker.passes_started >= 1 and h.worker.state is WorkerState.SLEEPING
        for h in supervisor.live_workers
    )


async def failing_scan(*args, **kwargs):
    raise RuntimeError("scan exploded")
    yield  # pragma: no cover


@pytest.fixture
def control() -> ControlChannel:
    return ControlChannel()


@pytest.fixture
def make_supervisor(settings_factory, event_bus, control):
    def _make(**overrides) -> ScanSupervisor:
        return ScanSupervisor(settings_factory(**overrides), event_bus, control)

    return _make


class TestStartup:

    @pytest.mark.asyncio
    async def test_one_worker_per_pattern(self, make_supervisor, tree):
        tree("a/app.log", "a/tmp/x")
        supervisor = make_supervisor(patterns=["log", "tmp"])
        try:
            await supervisor.start_workers(["log", "tmp"])

            assert sorted(h.pattern for h in supervisor.live_workers) == ["log", "tmp"]
            assert isinstance(supervisor.get_worker("log"), PatternWorker)
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_scenario_two_patterns_report_their_matches(
        self, make_supervisor, wait_until, tree, recorder
    ):
        root = tree("a/app.log", "a/tmp/x")
        supervisor = make_supervisor()
        try:
            await supervisor.start_workers(["log", "tmp"])
            await wait_until(lambda: all_sleeping(supervisor))

            by_pattern = {}
            for event in recorder.of_type(MatchEvent):
                by_pattern.setdefault(event.pattern, set()).add(event.path)

            assert by_pattern == {
                "log": {str(root / "a/app.log")},
                "tmp": {str(root / "a/tmp")},
            }
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_creation_failure_aborts_whole_worker_set(self, make_supervisor, tree):
        tree("x")
        supervisor = make_supervisor()
        real_worker = PatternWorker

        def flaky_worker(**kwargs):
            if kwargs["pattern"] == "second":
                raise OSError("cannot create worker")
            return real_worker(**kwargs)

        with patch(
            "scandaemon.domains.supervision.supervisor.PatternWorker", side_effect=flaky_worker
        ):
            with pytest.raises(WorkerCreationError) as exc_info:
                await supervisor.start_workers(["first", "second", "third"])

        assert exc_info.value.pattern == "second"
        assert supervisor.live_workers == []


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_restart_reaches_every_worker(
        self, make_supervisor, wait_until, control, tree, recorder
    ):
        tree("a.log", "b.tmp")
        supervisor = make_supervisor()
        try:
            await supervisor.start_workers(["log", "tmp", "a"])
            await wait_until(lambda: all_sleeping(supervisor))

            control.notify(ControlSignal.RESTART)
            await supervisor.tick()

            await wait_until(
                lambda: all(h.worker.passes_completed == 2 for h in supervisor.live_workers)
            )
            broadcasts = recorder.of_type(ControlSignalBroadcastEvent)
            assert len(broadcasts) == 1
            assert broadcasts[0].signal is ControlSignal.RESTART
            assert broadcasts[0].recipients == 3
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_stop_reaches_every_worker(self, make_supervisor, wait_until, control, tree):
        tree("a.log")
        supervisor = make_supervisor()
        try:
            await supervisor.start_workers(["log", "tmp"])
            await wait_until(lambda: all_sleeping(supervisor))

            control.notify(ControlSignal.STOP)
            await supervisor.tick()

            assert all(h.worker.interrupt.stop_requested for h in supervisor.live_workers)
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_burst_of_notifications_is_broadcast_once(
        self, make_supervisor, control, tree, recorder
    ):
        tree("a.log")
        supervisor = make_supervisor()
        try:
            await supervisor.start_workers(["log"])
            for _ in range(3):
                control.notify(ControlSignal.RESTART)

            await supervisor.tick()
            await supervisor.tick()

            assert len(recorder.of_type(ControlSignalBroadcastEvent)) == 1
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_tick_without_notifications_does_nothing(self, make_supervisor, recorder):
        supervisor = make_supervisor()

        await supervisor.tick()

        assert recorder.of_type(ControlSignalBroadcastEvent) == []
        assert recorder.of_type(WorkerExitedEvent) == []


class TestReaping:

    @pytest.mark.asyncio
    async def test_exits_are_reaped_one_per_tick(self, make_supervisor, recorder, tree):
        tree("x")
        supervisor = make_supervisor()
        with patch("scandaemon.domains.file_discovery.pattern_worker.scan", new=failing_scan):
            await supervisor.start_workers(["first", "second"])
            await asyncio.gather(*(h.task for h in supervisor.live_workers), return_exceptions=True)

        await supervisor.tick()
        assert len(recorder.of_type(WorkerExitedEvent)) == 1
        assert len(supervisor.live_workers) == 1

        await supervisor.tick()
        exits = recorder.of_type(WorkerExitedEvent)
        assert len(exits) == 2
        assert {e.pattern for e in exits} == {"first", "second"}
        assert all(e.exit_code == EXIT_FAILURE for e in exits)
        assert "scan exploded" in exits[0].error
        assert supervisor.live_workers == []

        await supervisor.tick()
        assert len(recorder.of_type(WorkerExitedEvent)) == 2

    @pytest.mark.asyncio
    async def test_exited_worker_is_not_respawned_by_default(
        self, make_supervisor, control, recorder, tree, caplog
    ):
        tree("a.log")
        supervisor = make_supervisor()
        try:
            await supervisor.start_workers(["log", "tmp"])
            doomed = next(h for h in supervisor.live_workers if h.pattern == "log")
            doomed.task.cancel()
            await asyncio.gather(doomed.task, return_exceptions=True)

            with caplog.at_level(logging.WARNING):
                await supervisor.tick()

            exits = recorder.of_type(WorkerExitedEvent)
            assert [(e.pattern, e.exit_code) for e in exits] == [("log", EXIT_CANCELLED)]
            assert [h.pattern for h in supervisor.live_workers] == ["tmp"]
            assert "no longer being scanned" in caplog.text

            # Later broadcasts only reach the remaining worker
            control.notify(ControlSignal.STOP)
            await supervisor.tick()
            assert recorder.of_type(ControlSignalBroadcastEvent)[-1].recipients == 1
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_respawn_when_enabled(self, make_supervisor, wait_until, recorder, tree):
        tree("a.log")
        supervisor = make_supervisor(respawn_exited_workers=True)
        try:
            await supervisor.start_workers(["log"])
            original = supervisor.get_worker("log")
            handle = supervisor.live_workers[0]
            handle.task.cancel()
            await asyncio.gather(handle.task, return_exceptions=True)

            await supervisor.tick()

            assert len(recorder.of_type(WorkerExitedEvent)) == 1
            replacement = supervisor.get_worker("log")
            assert replacement is not original
            assert [h.pattern for h in supervisor.live_workers] == ["log"]
            await wait_until(lambda: replacement.passes_completed == 1)
        finally:
            await supervisor.shutdown()


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_run_relays_operator_restart(self, make_supervisor, wait_until, control, tree):
        tree("a.log")
        supervisor = make_supervisor(supervisor_tick_seconds=0.05)
        run_task = asyncio.create_task(supervisor.run(["log"]))
        try:
            await wait_until(lambda: supervisor.live_workers and all_sleeping(supervisor))

            control.notify(ControlSignal.RESTART)

            await wait_until(lambda: supervisor.get_worker("log").passes_completed == 2)
        finally:
            run_task.cancel()
            await asyncio.gather(run_task, return_exceptions=True)
            await supervisor.shutdown()

        assert supervisor.get_worker("log").state is WorkerState.TERMINATED
