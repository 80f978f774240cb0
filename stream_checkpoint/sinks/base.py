"""
Abstract sink interface.

A sink receives committed payloads in arrival order. Because the
transport redelivers inclusively after a reconnect, and a crash between a
sink write and the cursor save replays the same payloads, ``apply`` must
be idempotent: applying a payload twice leaves the sink as if it had been
applied once.
"""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from ..position import Position

KeyFunc = Callable[[Any], str]


def record_key(payload: Any, position: Position, key_func: KeyFunc | None = None) -> str:
    """Identity of a committed record.

    Uses the payload's natural key when ``key_func`` is given, otherwise a
    SHA-256 over the canonical JSON of ``(position, payload)``.
    """
    if key_func is not None:
        return str(key_func(payload))

    canonical = json.dumps(
        {"position": position.to_dict(), "payload": payload},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class Sink(ABC):
    """Destination for committed payloads."""

    @property
    def name(self) -> str:
        return type(self).__name__

    async def open(self) -> None:
        """Acquire resources before the first commit."""

    @abstractmethod
    async def apply(self, payload: Any, position: Position) -> None:
        """Apply one payload. Must be idempotent under re-application."""

    async def flush(self) -> None:
        """Make every applied payload durable. Called once per commit."""

    async def close(self) -> None:
        """Release resources."""
