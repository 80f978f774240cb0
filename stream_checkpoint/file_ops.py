"""
JSON file operations for file-backed cursor stores and sinks.

Provides:
- Atomic JSON writes using temp file + fsync + rename
- Durable JSONL appends (fsync per record)
- Line-by-line JSONL reading for memory efficiency
- Repair of a JSONL file whose last append was interrupted
"""

import json
import os
import tempfile
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .exceptions import StorageIOError


async def ensure_directory(path: Path) -> None:
    """Ensure directory exists, creating if necessary.

    Args:
        path: Directory path to ensure exists
    """
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path) -> dict[str, Any] | None:
    """Read a JSON file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON data or None if file doesn't exist
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
            return json.loads(content) if content.strip() else None
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_json", str(path), e) from e
    except OSError as e:
        raise StorageIOError("read_json", str(path), e) from e


async def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON file atomically using temp file + rename.

    Either the previous content or the new content is visible afterwards,
    never a partially written file.

    Args:
        path: Target path for JSON file
        data: Data to serialize as JSON
    """
    await ensure_directory(path.parent)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=".json",
    )
    try:
        os.close(fd)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, default=_json_serializer))
            await f.flush()
            os.fsync(f.fileno())

        await aiofiles.os.replace(temp_path, path)
    except Exception as e:
        # Clean up temp file on error
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError("write_json", str(path), e) from e


async def iter_jsonl(path: Path) -> AsyncIterator[dict[str, Any]]:
    """Iterate over lines in a JSONL file without loading all into memory.

    A truncated final line (crash during append) is skipped.

    Args:
        path: Path to JSONL file

    Yields:
        Parsed JSON objects one at a time
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return

        async with aiofiles.open(path, encoding="utf-8") as f:
            async for line in f:
                if not line.endswith("\n"):
                    break
                line = line.strip()
                if line:
                    yield json.loads(line)
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_jsonl", str(path), e) from e
    except OSError as e:
        raise StorageIOError("read_jsonl", str(path), e) from e


async def append_jsonl(path: Path, data: dict[str, Any]) -> None:
    """Append a single JSON object to a JSONL file.

    Args:
        path: Path to JSONL file
        data: Data to append
    """
    await ensure_directory(path.parent)

    try:
        async with aiofiles.open(path, "a", encoding="utf-8") as f:
            await f.write(json.dumps(data, default=_json_serializer) + "\n")
            await f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise StorageIOError("append_jsonl", str(path), e) from e


async def truncate_partial_line(path: Path, chunk_size: int = 4096) -> int:
    """Cut an unterminated last line off a JSONL file.

    An append interrupted by a crash leaves text without a trailing newline;
    the next append would run into it. The file is scanned backwards for the
    last newline and truncated right after it.

    Args:
        path: Path to JSONL file
        chunk_size: Bytes read per backwards step

    Returns:
        Number of bytes removed (0 when the file is clean or missing)
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return 0

        async with aiofiles.open(path, "rb+") as f:
            size = await f.seek(0, os.SEEK_END)
            keep = 0
            end = size
            while end > 0:
                start = max(0, end - chunk_size)
                await f.seek(start)
                chunk = await f.read(end - start)
                newline = chunk.rfind(b"\n")
                if newline != -1:
                    keep = start + newline + 1
                    break
                end = start

            if keep == size:
                return 0
            await f.truncate(keep)
            await f.flush()
            os.fsync(f.fileno())
            return size - keep
    except OSError as e:
        raise StorageIOError("truncate_jsonl", str(path), e) from e


async def remove_file(path: Path) -> bool:
    """Remove a file if it exists.

    Args:
        path: Path to remove

    Returns:
        True if file was removed, False if it didn't exist
    """
    try:
        if await aiofiles.os.path.exists(path):
            await aiofiles.os.remove(path)
            return True
        return False
    except OSError as e:
        raise StorageIOError("remove", str(path), e) from e


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for types not handled by default.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation
    """
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
