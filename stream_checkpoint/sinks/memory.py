"""In-memory keyed sink."""

from __future__ import annotations

from typing import Any

from ..position import Position
from .base import KeyFunc, Sink, record_key


class MemorySink(Sink):
    """Keyed upsert into a dict, preserving first-arrival order.

    Attributes:
        apply_count: Number of ``apply`` calls, including re-applications
        flush_count: Number of ``flush`` calls (one per commit)
    """

    def __init__(self, key_func: KeyFunc | None = None) -> None:
        self.key_func = key_func
        self._records: dict[str, Any] = {}
        self._positions: dict[str, Position] = {}
        self.apply_count = 0
        self.flush_count = 0

    async def apply(self, payload: Any, position: Position) -> None:
        key = record_key(payload, position, self.key_func)
        self._records[key] = payload
        self._positions.setdefault(key, position)
        self.apply_count += 1

    async def flush(self) -> None:
        self.flush_count += 1

    @property
    def payloads(self) -> list[Any]:
        """Committed payloads in the order they were first applied."""
        return list(self._records.values())

    def position_of(self, key: str) -> Position | None:
        return self._positions.get(key)

    def __len__(self) -> int:
        return len(self._records)
