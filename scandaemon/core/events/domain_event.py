"""
Base class for everything workers and the supervisor report.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone

_sequence = itertools.count(1)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Immutable record of something the daemon observed.

    ``sequence`` increases monotonically across all events in the process, so
    records from concurrent workers can be put back in publication order.
    """

    sequence: int = field(default_factory=lambda: next(_sequence), compare=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    @property
    def name(self) -> str:
        return type(self).__name__
