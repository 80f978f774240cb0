"""
SQLite cursor store.

One row per stream in a ``stream_cursors`` table. Every save is its own
transaction, so a failed save leaves the previous row untouched.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import CursorPersistError, StorageIOError
from ..file_ops import ensure_directory
from ..position import Position, position_from_dict
from .base import CursorStore

logger = logging.getLogger(__name__)


@dataclass
class SQLiteCursorConfig:
    """Configuration for the SQLite cursor store."""

    db_path: str | Path = ":memory:"
    table_name: str = "stream_cursors"

    @classmethod
    def from_env(cls) -> SQLiteCursorConfig:
        """Create config from environment variables.

        Without ``STREAM_CHECKPOINT_SQLITE_PATH`` the database lives at
        ``~/.stream_checkpoint/cursors.db``, next to the file backend's
        directory.
        """
        return cls(
            db_path=os.environ.get("STREAM_CHECKPOINT_SQLITE_PATH")
            or Path.home() / ".stream_checkpoint" / "cursors.db",
            table_name=os.environ.get("STREAM_CHECKPOINT_SQLITE_TABLE", "stream_cursors"),
        )


class SQLiteCursorStore(CursorStore):
    """Cursor store persisting positions in a SQLite table."""

    def __init__(self, config: SQLiteCursorConfig):
        self.config = config
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False

    @classmethod
    async def create(cls, config: SQLiteCursorConfig | None = None) -> SQLiteCursorStore:
        """Create and initialize the store."""
        if config is None:
            config = SQLiteCursorConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the connection and create the table if needed."""
        if self._initialized:
            return

        if str(self.config.db_path) != ":memory:":
            await ensure_directory(Path(self.config.db_path).parent)

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.config.table_name} (
                    stream_key TEXT NOT NULL PRIMARY KEY,
                    position_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("initialize", str(self.config.db_path), e) from e

        self._initialized = True
        logger.info(f"SQLite cursor store initialized at {self.config.db_path}")

    def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError("connection", str(self.config.db_path), RuntimeError("Store not initialized"))
        return self.conn

    async def load(self, stream_key: str) -> Position | None:
        try:
            conn = self._connection()
            async with conn.execute(
                f"SELECT position_json FROM {self.config.table_name} WHERE stream_key = ?",
                (stream_key,),
            ) as cursor:
                row = await cursor.fetchone()
        except (aiosqlite.Error, StorageIOError) as e:
            raise CursorPersistError("load", stream_key, e) from e

        if row is None:
            return None

        try:
            return position_from_dict(json.loads(row[0]))
        except (KeyError, TypeError, ValueError) as e:
            raise CursorPersistError("load", stream_key, e) from e

    async def save(self, stream_key: str, position: Position) -> None:
        try:
            conn = self._connection()
            await conn.execute(
                f"""
                INSERT INTO {self.config.table_name} (stream_key, position_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(stream_key) DO UPDATE SET
                    position_json = excluded.position_json,
                    updated_at = excluded.updated_at
                """,
                (stream_key, json.dumps(position.to_dict()), datetime.now(UTC).isoformat()),
            )
            await conn.commit()
        except (aiosqlite.Error, StorageIOError) as e:
            if self.conn is not None:
                await self.conn.rollback()
            raise CursorPersistError("save", stream_key, e) from e

    async def delete(self, stream_key: str) -> bool:
        try:
            conn = self._connection()
            cursor = await conn.execute(
                f"DELETE FROM {self.config.table_name} WHERE stream_key = ?", (stream_key,)
            )
            await conn.commit()
            return cursor.rowcount > 0
        except (aiosqlite.Error, StorageIOError) as e:
            raise CursorPersistError("delete", stream_key, e) from e

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
            self._initialized = False

    async def __aenter__(self) -> SQLiteCursorStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
