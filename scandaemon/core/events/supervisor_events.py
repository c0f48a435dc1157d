# scandaemon/core/events/supervisor_events.py
from dataclasses import dataclass
from typing import Optional

from scandaemon.core.events.domain_event import DomainEvent
from scandaemon.models import ControlSignal


@dataclass(frozen=True, kw_only=True)
class ControlSignalBroadcastEvent(DomainEvent):
    """Published after a control signal has been fanned out to the live workers."""
    signal: ControlSignal
    recipients: int


@dataclass(frozen=True, kw_only=True)
class WorkerExitedEvent(DomainEvent):
    pattern: str
    exit_code: int
    error: Optional[str] = None
