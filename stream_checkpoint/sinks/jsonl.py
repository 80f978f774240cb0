"""
Append-only JSONL sink.

Each committed payload becomes one line:

    {"key": "...", "position": {...}, "payload": {...}, "committed_at": "..."}

Keys already present in the file are skipped, which makes re-application
after a replay a no-op. Lines are fsynced as they are written, and a line
left half-written by a crash is cut off when the sink is opened again.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..exceptions import SinkWriteError, StorageIOError
from ..file_ops import append_jsonl, iter_jsonl, truncate_partial_line
from ..position import Position
from .base import KeyFunc, Sink, record_key

logger = logging.getLogger(__name__)


class JsonlFileSink(Sink):
    """Sink appending committed payloads to a JSONL file.

    The keys used to skip replays are held in memory. By default every key
    in the file is kept, so memory grows with the file; rotate the output
    per run on unbounded streams, or pass ``dedup_window`` to remember only
    the most recent keys. A replay reaches back no further than the last
    persisted position, so the window only has to cover the records written
    between two commits.
    """

    def __init__(
        self,
        path: str | Path,
        key_func: KeyFunc | None = None,
        dedup_window: int | None = None,
    ):
        if dedup_window is not None and dedup_window < 1:
            raise ValueError(f"dedup_window must be >= 1, got {dedup_window}")
        self.path = Path(path)
        self.key_func = key_func
        self.dedup_window = dedup_window
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._opened = False

    async def open(self) -> None:
        """Repair an interrupted append, then load the keys already written."""
        if self._opened:
            return
        try:
            removed = await truncate_partial_line(self.path)
            if removed:
                logger.warning(f"Dropped {removed} byte(s) of a partial record at the end of {self.path}")
            async for record in iter_jsonl(self.path):
                self._remember(record["key"])
        except StorageIOError as e:
            raise SinkWriteError(self.name, cause=e) from e
        self._opened = True
        logger.debug(f"JSONL sink opened at {self.path} with {len(self._seen)} known keys")

    def _remember(self, key: str) -> None:
        self._seen[key] = None
        if self.dedup_window is not None and len(self._seen) > self.dedup_window:
            self._seen.popitem(last=False)

    async def apply(self, payload: Any, position: Position) -> None:
        if not self._opened:
            await self.open()

        key = record_key(payload, position, self.key_func)
        if key in self._seen:
            logger.debug(f"Skipping already committed record {key} @ {position.describe()}")
            return

        try:
            await append_jsonl(
                self.path,
                {
                    "key": key,
                    "position": position.to_dict(),
                    "payload": payload,
                    "committed_at": datetime.now(UTC).isoformat(),
                },
            )
        except StorageIOError as e:
            raise SinkWriteError(self.name, position.describe(), e) from e
        self._remember(key)

    async def read_all(self) -> list[dict[str, Any]]:
        """Read every committed record back, in file order."""
        return [record async for record in iter_jsonl(self.path)]
