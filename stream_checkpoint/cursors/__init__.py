"""
Cursor store implementations.

Each store persists one position per stream key (file, SQLite row,
Cosmos DB document, or memory). Backends share the ``CursorStore``
interface so the engine never depends on a specific one.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from ..exceptions import ConfigurationError
from .base import CursorStore
from .file import FileCursorStore
from .memory import MemoryCursorStore

if TYPE_CHECKING:
    from ..config import ConsumerConfig

CURSOR_BACKENDS = ("memory", "file", "sqlite", "cosmos")


async def create_cursor_store(config: ConsumerConfig) -> CursorStore:
    """Create and initialize the cursor store selected by ``config.cursor_backend``.

    Raises:
        ConfigurationError: If the backend is unknown or misconfigured
    """
    backend = config.cursor_backend

    if backend == "memory":
        return MemoryCursorStore()

    if backend == "file":
        directory = config.cursor_path or Path.home() / ".stream_checkpoint" / "cursors"
        return FileCursorStore(directory)

    if backend == "sqlite":
        from .sqlite import SQLiteCursorConfig, SQLiteCursorStore

        sqlite_config = (
            SQLiteCursorConfig(db_path=config.cursor_path)
            if config.cursor_path
            else SQLiteCursorConfig.from_env()
        )
        return await SQLiteCursorStore.create(sqlite_config)

    if backend == "cosmos":
        from .cosmos import CosmosCursorStore

        return await CosmosCursorStore.create()

    raise ConfigurationError(
        "cursor_backend", f"expected one of {', '.join(CURSOR_BACKENDS)}", backend
    )


__all__ = [
    "CURSOR_BACKENDS",
    "CursorStore",
    "FileCursorStore",
    "MemoryCursorStore",
    "create_cursor_store",
]
