"""
Shared fixtures for the scanner, worker and supervisor tests.
"""

import asyncio
import time
from pathlib import Path
from typing import Iterable, List, Type

import pytest
import pytest_asyncio

from scandaemon.config import Settings
from scandaemon.core.events.domain_event import DomainEvent
from scandaemon.core.events.event_bus import DomainEventBus
from scandaemon.core.events.scanner_events import (
    MatchEvent,
    ScanPassFinishedEvent,
    ScanPassStartedEvent,
    WorkerWokeEvent,
)
from scandaemon.core.events.supervisor_events import (
    ControlSignalBroadcastEvent,
    WorkerExitedEvent,
)


def build_tree(root: Path, entries: Iterable[str]) -> Path:
    """Create files under ``root``; entries ending in '/' become directories."""
    for entry in entries:
        target = root / entry
        if entry.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("x")
    return root


async def poll_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class EventRecorder:
    """Collects every published event of the subscribed types, in order."""

    def __init__(self) -> None:
        self.events: List[DomainEvent] = []

    async def record(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[DomainEvent]) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def matched_paths(self) -> List[str]:
        return [e.path for e in self.of_type(MatchEvent)]


@pytest.fixture
def tree(tmp_path: Path):
    def _make(*entries: str) -> Path:
        return build_tree(tmp_path, entries)

    return _make


@pytest.fixture
def event_bus() -> DomainEventBus:
    return DomainEventBus()


@pytest_asyncio.fixture
async def recorder(event_bus: DomainEventBus) -> EventRecorder:
    rec = EventRecorder()
    await event_bus.subscribe_all(
        (
            MatchEvent,
            ScanPassStartedEvent,
            ScanPassFinishedEvent,
            WorkerWokeEvent,
            ControlSignalBroadcastEvent,
            WorkerExitedEvent,
        ),
        rec.record,
    )
    return rec


@pytest.fixture
def settings_factory(tmp_path: Path):
    """Settings isolated from settings.env and the environment."""

    def _make(**overrides) -> Settings:
        values = {
            "scan_root": str(tmp_path),
            "scan_interval_seconds": 60,
            "log_file_path": str(tmp_path / "logs" / "scandaemon.log"),
            "daemonize": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def wait_until():
    """Awaitable poll of a predicate against the running loop, failing after ``timeout``."""
    return poll_until
