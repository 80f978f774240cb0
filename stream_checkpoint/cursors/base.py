"""
Abstract cursor store interface.

A cursor store persists one position per stream key. All implementations
must be crash-consistent: a ``save`` that returned is visible to a later
``load`` after a crash, and a ``save`` that failed leaves the previous
value intact.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..position import Position


class CursorStore(ABC):
    """Durable key -> position persistence.

    Only the checkpoint engine writes to a given key, and it does so
    sequentially from its commit path.
    """

    @abstractmethod
    async def load(self, stream_key: str) -> Position | None:
        """Load the last persisted position for a stream.

        Args:
            stream_key: Stream identifier

        Returns:
            The position, or None if nothing was ever saved

        Raises:
            CursorPersistError: If the store cannot be read
        """

    @abstractmethod
    async def save(self, stream_key: str, position: Position) -> None:
        """Persist a position for a stream, replacing the previous one.

        Raises:
            CursorPersistError: If the position was not durably stored
        """

    @abstractmethod
    async def delete(self, stream_key: str) -> bool:
        """Forget a stream's position.

        Returns:
            True if a position existed
        """

    async def close(self) -> None:
        """Release resources held by the store."""

    async def __aenter__(self) -> CursorStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
