import logging
from typing import Optional

from scandaemon.core.control_channel import ScanInterrupt
from scandaemon.core.events.event_bus import DomainEventBus
from scandaemon.core.events.scanner_events import (
    ScanPassFinishedEvent,
    ScanPassStartedEvent,
    WorkerSleepingEvent,
    WorkerWokeEvent,
)
from scandaemon.models import ControlSignal, WorkerState
from .pattern_scanner import ScanRequest, scan


class PatternWorker:
    """
    Repeatedly scans the whole tree for a single pattern.

    Runs until its task is cancelled. Restart and Stop arrive through
    ``deliver`` and are honoured cooperatively by the scanner and by the
    sleep between passes.
    """

    def __init__(
        self,
        pattern: str,
        scan_root: str,
        scan_interval_seconds: float,
        event_bus: DomainEventBus,
        verbose: bool = False,
        guard_symlink_loops: bool = False,
    ):
        if not pattern:
            raise ValueError("pattern must be a non-empty string")

        self.pattern = pattern
        self.scan_root = scan_root
        self.scan_interval_seconds = scan_interval_seconds
        self.verbose = verbose
        self.guard_symlink_loops = guard_symlink_loops
        self._event_bus = event_bus

        self.interrupt = ScanInterrupt()
        self.state = WorkerState.SLEEPING  # idle until run() starts the first pass

        self.passes_started = 0
        self.passes_completed = 0
        self.passes_interrupted = 0

    def deliver(self, control: ControlSignal) -> None:
        """Set the interrupt flag for ``control``. Repeated deliveries coalesce."""
        self.interrupt.request(control)
        if self.verbose:
            logging.debug(f"[{self.pattern}] received {control.value} in state {self.state.value}")

    def request_restart(self) -> None:
        self.deliver(ControlSignal.RESTART)

    def request_stop(self) -> None:
        self.deliver(ControlSignal.STOP)

    async def run(self) -> None:
        logging.info(f"Worker for pattern '{self.pattern}' started (root: {self.scan_root})")
        try:
            while True:
                interrupted_by = await self.run_pass()

                if interrupted_by is ControlSignal.RESTART:
                    logging.debug(f"[{self.pattern}] restart requested, skipping sleep")
                    continue

                await self._sleep()
        finally:
            self.state = WorkerState.TERMINATED
            logging.info(f"Worker for pattern '{self.pattern}' terminated")

    async def run_pass(self) -> Optional[ControlSignal]:
        """
        Run one scan pass and publish its events.

        Returns the control signal that cut the pass short, or None if the
        pass visited every reachable entry.
        """
        self.interrupt.clear()
        self.state = WorkerState.SCANNING
        self.passes_started += 1
        pass_number = self.passes_started

        await self._event_bus.publish(
            ScanPassStartedEvent(pattern=self.pattern, pass_number=pass_number)
        )

        request = ScanRequest(root=self.scan_root, pattern=self.pattern)
        matches = 0
        async for match in scan(
            request,
            self.interrupt,
            verbose=self.verbose,
            guard_symlink_loops=self.guard_symlink_loops,
        ):
            matches += 1
            await self._event_bus.publish(match)

        interrupted_by = self.interrupt.reason
        if interrupted_by is None:
            self.passes_completed += 1
        else:
            self.passes_interrupted += 1

        await self._event_bus.publish(
            ScanPassFinishedEvent(
                pattern=self.pattern,
                pass_number=pass_number,
                matches=matches,
                interrupted_by=interrupted_by,
            )
        )
        return interrupted_by

    async def _sleep(self) -> None:
        self.state = WorkerState.SLEEPING
        await self._event_bus.publish(
            WorkerSleepingEvent(pattern=self.pattern, seconds=self.scan_interval_seconds)
        )

        restarted = await self.interrupt.wait_for_restart(self.scan_interval_seconds)

        await self._event_bus.publish(WorkerWokeEvent(pattern=self.pattern, restarted=restarted))
