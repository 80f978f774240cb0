"""In-memory cursor store for tests and throwaway runs."""

from __future__ import annotations

from ..position import Position
from .base import CursorStore


class MemoryCursorStore(CursorStore):
    """Cursor store backed by a dict.

    Positions are lost when the process exits. ``history`` records every
    save in order, which tests use to check that positions never run ahead
    of the sink.
    """

    def __init__(self, initial: dict[str, Position] | None = None) -> None:
        self._positions: dict[str, Position] = dict(initial or {})
        self.history: list[tuple[str, Position]] = []

    async def load(self, stream_key: str) -> Position | None:
        return self._positions.get(stream_key)

    async def save(self, stream_key: str, position: Position) -> None:
        self._positions[stream_key] = position
        self.history.append((stream_key, position))

    async def delete(self, stream_key: str) -> bool:
        return self._positions.pop(stream_key, None) is not None
