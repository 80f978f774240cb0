"""
Pending buffer: events observed since the last commit.

Pure working memory. Whatever is in here has not been committed, so it is
redelivered by the transport after a reconnect or restart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .position import Position


@dataclass(frozen=True)
class PendingItem:
    """A payload waiting for the next commit."""

    payload: Any
    position: Position


class PendingBuffer:
    """Ordered, append-only accumulation of pending payloads."""

    def __init__(self) -> None:
        self._items: list[PendingItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def append(self, payload: Any, position: Position) -> PendingItem:
        item = PendingItem(payload=payload, position=position)
        self._items.append(item)
        return item

    def snapshot(self, count: int | None = None) -> tuple[PendingItem, ...]:
        """Return the first ``count`` items (all when None) in arrival order."""
        if count is None:
            return tuple(self._items)
        return tuple(self._items[:count])

    def discard(self, count: int) -> None:
        """Drop the first ``count`` items once they have been committed."""
        del self._items[:count]

    def clear(self) -> int:
        """Drop everything. Returns the number of items dropped."""
        dropped = len(self._items)
        self._items = []
        return dropped

    @property
    def last_position(self) -> Position | None:
        return self._items[-1].position if self._items else None
