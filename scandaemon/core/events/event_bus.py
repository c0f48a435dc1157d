"""
In-process mediator between the scanning side and the log sink.

Workers and the supervisor publish; ScanEventLogHandlers subscribes.
"""
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Iterable, List, Type

from scandaemon.core.events.domain_event import DomainEvent

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:
    """
    Delivers each event to the handlers registered for its exact type.

    Handlers run one after another in subscription order, so a worker's
    matches reach every subscriber in the order the walk produced them. A
    handler that raises is logged and skipped; the publishing worker never
    sees the exception.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)

    async def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logging.debug(f"{handler.__name__} subscribed to {event_type.__name__}")

    async def subscribe_all(
        self, event_types: Iterable[Type[DomainEvent]], handler: EventHandler
    ) -> None:
        """Register one handler for several event types."""
        for event_type in event_types:
            await self.subscribe(event_type, handler)

    def handler_count(self, event_type: Type[DomainEvent]) -> int:
        return len(self._handlers.get(event_type, ()))

    async def publish(self, event: DomainEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            await self._deliver(handler, event)

    async def _deliver(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logging.error(
                f"Event handler '{handler.__name__}' failed on {event.name} "
                f"#{event.sequence}: {e}",
                exc_info=True,
            )
