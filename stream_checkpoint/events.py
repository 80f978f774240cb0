"""
Normalized stream events.

The adapter turns every transport notification into a ``StreamEvent``
tagged with an ``EventKind``; the engine dispatches on that tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .position import Position


class EventKind(Enum):
    """Kind of a normalized stream event."""

    DATA = "data"
    PROGRESS = "progress"
    ERROR = "error"
    COMPLETE = "complete"
    RECONNECT = "reconnect"  # Restart hook fired, redelivery follows


@dataclass(frozen=True)
class StreamEvent:
    """A single normalized event.

    Attributes:
        kind: Event tag
        payload: Domain payload (DATA only)
        position: Where the event occurred (DATA, PROGRESS)
        boundary: DATA event is the last one of its block/transaction unit
        details: Error details as reported by the transport (ERROR only)
        terminal: Whether an ERROR is fatal
    """

    kind: EventKind
    payload: Any = None
    position: Position | None = None
    boundary: bool = False
    details: Any = None
    terminal: bool = False

    @classmethod
    def data(cls, payload: Any, position: Position, boundary: bool = False) -> StreamEvent:
        return cls(EventKind.DATA, payload=payload, position=position, boundary=boundary)

    @classmethod
    def progress(cls, position: Position) -> StreamEvent:
        return cls(EventKind.PROGRESS, position=position)

    @classmethod
    def error(cls, details: Any, terminal: bool = False) -> StreamEvent:
        return cls(EventKind.ERROR, details=details, terminal=terminal)

    @classmethod
    def complete(cls) -> StreamEvent:
        return cls(EventKind.COMPLETE)

    @classmethod
    def reconnect(cls) -> StreamEvent:
        return cls(EventKind.RECONNECT)
