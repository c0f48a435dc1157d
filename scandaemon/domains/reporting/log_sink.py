"""
Log sink for domain events.

Every worker and the supervisor publish events on the shared bus; this module
turns them into log records. The stdlib logging handlers serialize each emit,
so no extra locking is needed here. Every record carries the pattern (and the
path for matches) in ``extra`` for handlers that want structured fields.
"""
import logging

from scandaemon.core.events.event_bus import DomainEventBus
from scandaemon.core.events.scanner_events import (
    MatchEvent,
    ScanPassFinishedEvent,
    ScanPassStartedEvent,
    WorkerSleepingEvent,
    WorkerWokeEvent,
)
from scandaemon.core.events.supervisor_events import (
    ControlSignalBroadcastEvent,
    WorkerExitedEvent,
)

logger = logging.getLogger("scandaemon.events")


class ScanEventLogHandlers:
    """Subscribes to scanner and supervisor events and writes them to the log."""

    def __init__(self, event_bus: DomainEventBus):
        self._event_bus = event_bus

    async def register(self) -> None:
        await self._event_bus.subscribe(MatchEvent, self.handle_match)
        await self._event_bus.subscribe(ScanPassStartedEvent, self.handle_pass_started)
        await self._event_bus.subscribe(ScanPassFinishedEvent, self.handle_pass_finished)
        await self._event_bus.subscribe(WorkerSleepingEvent, self.handle_worker_sleeping)
        await self._event_bus.subscribe(WorkerWokeEvent, self.handle_worker_woke)
        await self._event_bus.subscribe(ControlSignalBroadcastEvent, self.handle_broadcast)
        await self._event_bus.subscribe(WorkerExitedEvent, self.handle_worker_exited)

    async def handle_match(self, event: MatchEvent) -> None:
        logger.info(
            f"Found: {event.path} (pattern: {event.pattern}) "
            f"at {event.timestamp.astimezone():%Y-%m-%d %H:%M:%S}",
            extra={"event": "match", "pattern": event.pattern, "path": event.path},
        )

    async def handle_pass_started(self, event: ScanPassStartedEvent) -> None:
        logger.info(
            f"Worker '{event.pattern}' - pass {event.pass_number} started",
            extra={"event": "pass_started", "pattern": event.pattern},
        )

    async def handle_pass_finished(self, event: ScanPassFinishedEvent) -> None:
        if event.completed:
            logger.info(
                f"Worker '{event.pattern}' - pass {event.pass_number} completed "
                f"({event.matches} matches)",
                extra={"event": "pass_completed", "pattern": event.pattern},
            )
        else:
            logger.info(
                f"Worker '{event.pattern}' - pass {event.pass_number} interrupted by "
                f"{event.interrupted_by.value} ({event.matches} matches so far)",
                extra={"event": "pass_interrupted", "pattern": event.pattern},
            )

    async def handle_worker_sleeping(self, event: WorkerSleepingEvent) -> None:
        logger.debug(
            f"Worker '{event.pattern}' - sleeping {event.seconds:g}s",
            extra={"event": "sleeping", "pattern": event.pattern},
        )

    async def handle_worker_woke(self, event: WorkerWokeEvent) -> None:
        reason = "restart" if event.restarted else "timer"
        logger.debug(
            f"Worker '{event.pattern}' - woke up ({reason})",
            extra={"event": "woke", "pattern": event.pattern},
        )

    async def handle_broadcast(self, event: ControlSignalBroadcastEvent) -> None:
        logger.info(
            f"Supervisor: forwarded {event.signal.value} to {event.recipients} worker(s)",
            extra={"event": "broadcast"},
        )

    async def handle_worker_exited(self, event: WorkerExitedEvent) -> None:
        message = f"Worker '{event.pattern}' exited (code {event.exit_code})"
        if event.error:
            message += f": {event.error}"
        level = logging.INFO if event.exit_code == 0 else logging.WARNING
        logger.log(level, message, extra={"event": "worker_exited", "pattern": event.pattern})
