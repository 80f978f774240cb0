"""
SQLite sink.

Committed payloads are upserted by record key into a ``committed_events``
table. Writes of one commit share a transaction that ``flush()`` commits,
so a commit either lands completely or not at all.
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

from ..exceptions import SinkWriteError
from ..position import Position, position_from_dict
from .base import KeyFunc, Sink, record_key

logger = logging.getLogger(__name__)


@dataclass
class SQLiteSinkConfig:
    """Configuration for the SQLite sink."""

    db_path: str | Path = ":memory:"
    table_name: str = "committed_events"

    @classmethod
    def from_env(cls) -> SQLiteSinkConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("STREAM_CHECKPOINT_SINK_SQLITE_PATH", ":memory:"),
            table_name=os.environ.get("STREAM_CHECKPOINT_SINK_SQLITE_TABLE", "committed_events"),
        )


class SQLiteSink(Sink):
    """Keyed upsert sink backed by SQLite."""

    def __init__(self, config: SQLiteSinkConfig | None = None, key_func: KeyFunc | None = None):
        self.config = config or SQLiteSinkConfig()
        self.key_func = key_func
        self.conn: aiosqlite.Connection | None = None

    async def open(self) -> None:
        if self.conn is not None:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.config.table_name} (
                    record_key TEXT NOT NULL PRIMARY KEY,
                    position_json TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    committed_at TEXT NOT NULL
                )
                """
            )
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise SinkWriteError(self.name, cause=e) from e

        logger.info(f"SQLite sink opened at {self.config.db_path}")

    async def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            await self.open()
        if self.conn is None:
            raise SinkWriteError(self.name, cause=RuntimeError("connection not open"))
        return self.conn

    async def apply(self, payload: Any, position: Position) -> None:
        conn = await self._connection()
        key = record_key(payload, position, self.key_func)
        try:
            await conn.execute(
                f"""
                INSERT INTO {self.config.table_name}
                    (record_key, position_json, payload_json, committed_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(record_key) DO UPDATE SET
                    position_json = excluded.position_json,
                    payload_json = excluded.payload_json
                """,
                (
                    key,
                    json.dumps(position.to_dict()),
                    json.dumps(payload, default=str),
                    datetime.now(UTC).isoformat(),
                ),
            )
        except aiosqlite.Error as e:
            await conn.rollback()
            raise SinkWriteError(self.name, position.describe(), e) from e

    async def flush(self) -> None:
        if self.conn is None:
            return
        try:
            await self.conn.commit()
        except aiosqlite.Error as e:
            await self.conn.rollback()
            raise SinkWriteError(self.name, cause=e) from e

    async def fetch_all(self) -> list[tuple[Position, Any]]:
        """Committed ``(position, payload)`` rows in insertion order."""
        conn = await self._connection()
        async with conn.execute(
            f"SELECT position_json, payload_json FROM {self.config.table_name} ORDER BY rowid"
        ) as cursor:
            rows = await cursor.fetchall()
        return [(position_from_dict(json.loads(p)), json.loads(v)) for p, v in rows]

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
