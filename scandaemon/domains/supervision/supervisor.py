import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from scandaemon.config import Settings
from scandaemon.core.control_channel import ControlChannel
from scandaemon.core.events.event_bus import DomainEventBus
from scandaemon.core.events.supervisor_events import (
    ControlSignalBroadcastEvent,
    WorkerExitedEvent,
)
from scandaemon.core.exceptions import WorkerCreationError
from scandaemon.domains.file_discovery.pattern_worker import PatternWorker
from scandaemon.models import EXIT_CANCELLED, EXIT_FAILURE, EXIT_OK, ControlSignal


@dataclass
class WorkerHandle:
    worker: PatternWorker
    task: asyncio.Task
    reaped: bool = False
    exit_code: Optional[int] = None
    error: Optional[str] = field(default=None, repr=False)

    @property
    def pattern(self) -> str:
        return self.worker.pattern


def exit_status(task: asyncio.Task) -> Tuple[int, Optional[str]]:
    """(exit_code, error) for a finished worker task."""
    if task.cancelled():
        return EXIT_CANCELLED, None
    error = task.exception()
    if error is not None:
        return EXIT_FAILURE, f"{type(error).__name__}: {error}"
    return EXIT_OK, None


class ScanSupervisor:
    """
    Owns one PatternWorker per pattern and relays control signals to them.

    The tick loop is the only place where operator notifications are drained
    and exited workers are reaped. Reaping handles at most one worker per tick.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: DomainEventBus,
        control_channel: ControlChannel,
    ):
        self._settings = settings
        self._event_bus = event_bus
        self.control = control_channel
        self._workers: Dict[str, WorkerHandle] = {}

    @property
    def live_workers(self) -> List[WorkerHandle]:
        return [handle for handle in self._workers.values() if not handle.reaped]

    def get_worker(self, pattern: str) -> Optional[PatternWorker]:
        handle = self._workers.get(pattern)
        return handle.worker if handle else None

    def _create_worker(self, pattern: str) -> WorkerHandle:
        try:
            worker = PatternWorker(
                pattern=pattern,
                scan_root=self._settings.scan_root,
                scan_interval_seconds=self._settings.scan_interval_seconds,
                event_bus=self._event_bus,
                verbose=self._settings.verbose,
                guard_symlink_loops=self._settings.guard_symlink_loops,
            )
            task = asyncio.create_task(worker.run(), name=f"worker:{pattern}")
        except Exception as e:
            raise WorkerCreationError(pattern, str(e)) from e

        task.add_done_callback(self._on_worker_done)
        return WorkerHandle(worker=worker, task=task)

    def _on_worker_done(self, task: asyncio.Task) -> None:
        self.control.worker_exited.set()

    async def start_workers(self, patterns: Iterable[str]) -> None:
        """
        Start one worker per pattern.

        All or nothing: if any worker cannot be created, the ones already
        started are cancelled and WorkerCreationError propagates.
        """
        try:
            for pattern in patterns:
                if pattern in self._workers:
                    raise WorkerCreationError(pattern, "duplicate pattern")
                self._workers[pattern] = self._create_worker(pattern)
                logging.info(f"Started worker for pattern '{pattern}'")
        except WorkerCreationError:
            logging.critical("Worker creation failed, cancelling already started workers")
            await self.shutdown()
            self._workers.clear()
            raise

    async def broadcast(self, control: ControlSignal) -> int:
        recipients = [handle.worker for handle in self.live_workers]
        delivered = ControlChannel.broadcast(control, recipients)
        await self._event_bus.publish(
            ControlSignalBroadcastEvent(signal=control, recipients=delivered)
        )
        return delivered

    async def tick(self) -> None:
        """One pass over the supervisor's responsibilities."""
        if self.control.restart.take():
            await self.broadcast(ControlSignal.RESTART)

        if self.control.stop.take():
            await self.broadcast(ControlSignal.STOP)

        if self.control.worker_exited.take():
            await self._reap_one()

    async def _reap_one(self) -> Optional[WorkerHandle]:
        finished = [h for h in self._workers.values() if not h.reaped and h.task.done()]
        if not finished:
            return None

        handle = finished[0]
        handle.reaped = True
        handle.exit_code, handle.error = exit_status(handle.task)

        logging.info(
            f"Worker for pattern '{handle.pattern}' finished "
            f"(task {handle.task.get_name()}, code {handle.exit_code})"
        )
        await self._event_bus.publish(
            WorkerExitedEvent(
                pattern=handle.pattern,
                exit_code=handle.exit_code,
                error=handle.error,
            )
        )

        # Remaining exits are drained on later ticks
        if len(finished) > 1:
            self.control.worker_exited.set()

        if self._settings.respawn_exited_workers:
            self._respawn(handle.pattern)
        else:
            logging.warning(f"Pattern '{handle.pattern}' is no longer being scanned")

        return handle

    def _respawn(self, pattern: str) -> None:
        try:
            self._workers[pattern] = self._create_worker(pattern)
        except WorkerCreationError as e:
            logging.error(f"Respawn failed: {e}")
            return
        logging.info(f"Respawned worker for pattern '{pattern}'")

    async def run(self, patterns: Iterable[str]) -> None:
        """Start the workers and tick forever. Only cancellation ends this."""
        await self.start_workers(patterns)

        tick_seconds = self._settings.tick_interval_seconds
        logging.info(
            f"Supervisor running {len(self._workers)} worker(s), tick every {tick_seconds:g}s"
        )
        while True:
            await self.tick()
            await asyncio.sleep(tick_seconds)

    async def shutdown(self) -> None:
        """Cancel every worker task and wait for them to finish."""
        tasks = [h.task for h in self._workers.values() if not h.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logging.info("All workers stopped")
