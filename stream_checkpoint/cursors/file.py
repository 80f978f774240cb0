"""
File-backed cursor store.

Each stream key maps to one small JSON document:

    {directory}/{safe_key}.cursor.json

    {
      "stream_key": "karma-transfers",
      "position": {"kind": "cursor", "token": "..."},
      "updated_at": "2024-01-15T10:00:00+00:00"
    }

Documents are replaced with temp file + fsync + rename, so a crash during a
save leaves the previous document in place.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from ..exceptions import CursorPersistError, StorageIOError
from ..file_ops import read_json, remove_file, write_json_atomic
from ..position import Position, position_from_dict
from .base import CursorStore

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def cursor_filename(stream_key: str) -> str:
    """Map a stream key to a safe, collision-free file name."""
    if not stream_key:
        raise ValueError("stream_key must not be empty")
    safe = _UNSAFE_CHARS.sub("_", stream_key)[:64]
    digest = hashlib.sha256(stream_key.encode("utf-8")).hexdigest()[:8]
    return f"{safe}-{digest}.cursor.json"


class FileCursorStore(CursorStore):
    """Cursor store writing one JSON file per stream key."""

    def __init__(self, directory: str | Path):
        """
        Args:
            directory: Directory holding the cursor documents (created on first save)
        """
        self.directory = Path(directory)

    def path_for(self, stream_key: str) -> Path:
        return self.directory / cursor_filename(stream_key)

    async def load(self, stream_key: str) -> Position | None:
        path = self.path_for(stream_key)
        try:
            document = await read_json(path)
        except StorageIOError as e:
            raise CursorPersistError("load", stream_key, e) from e

        if document is None:
            return None

        try:
            position = position_from_dict(document["position"])
        except (KeyError, TypeError, ValueError) as e:
            raise CursorPersistError("load", stream_key, e) from e

        logger.debug(f"Loaded cursor for {stream_key} from {path}: {position.describe()}")
        return position

    async def save(self, stream_key: str, position: Position) -> None:
        document = {
            "stream_key": stream_key,
            "position": position.to_dict(),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            await write_json_atomic(self.path_for(stream_key), document)
        except StorageIOError as e:
            raise CursorPersistError("save", stream_key, e) from e

    async def delete(self, stream_key: str) -> bool:
        try:
            return await remove_file(self.path_for(stream_key))
        except StorageIOError as e:
            raise CursorPersistError("delete", stream_key, e) from e
