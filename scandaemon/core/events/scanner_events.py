# scandaemon/core/events/scanner_events.py
from dataclasses import dataclass
from typing import Optional

from scandaemon.core.events.domain_event import DomainEvent
from scandaemon.models import ControlSignal


@dataclass(frozen=True, kw_only=True)
class MatchEvent(DomainEvent):
    """An entry whose base name contains the pattern. Emitted once per pass."""
    path: str
    pattern: str


@dataclass(frozen=True, kw_only=True)
class ScanPassStartedEvent(DomainEvent):
    pattern: str
    pass_number: int


@dataclass(frozen=True, kw_only=True)
class ScanPassFinishedEvent(DomainEvent):
    """Published when a pass ends, either naturally or through a control signal."""
    pattern: str
    pass_number: int
    matches: int
    interrupted_by: Optional[ControlSignal] = None

    @property
    def completed(self) -> bool:
        return self.interrupted_by is None


@dataclass(frozen=True, kw_only=True)
class WorkerSleepingEvent(DomainEvent):
    pattern: str
    seconds: float


@dataclass(frozen=True, kw_only=True)
class WorkerWokeEvent(DomainEvent):
    pattern: str
    restarted: bool
