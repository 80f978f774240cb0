"""
Shared test configuration and fixtures.

Provides builders for recorded transport messages (block streams and
GraphQL cursor subscriptions) and in-memory doubles for the engine's
collaborators, so tests run without a network or a database server.
"""

import logging
from typing import Any

import pytest

from stream_checkpoint.config import ConsumerConfig
from stream_checkpoint.cursors import MemoryCursorStore
from stream_checkpoint.engine import CheckpointEngine
from stream_checkpoint.exceptions import TransportError
from stream_checkpoint.sinks import MemorySink

logger = logging.getLogger(__name__)


# =============================================================================
# Message builders
# =============================================================================


def action_message(block_num: int, name: str, **fields: Any) -> dict[str, Any]:
    """Block-stream ``action_trace`` message."""
    return {
        "type": "action_trace",
        "data": {"block_num": block_num, "block_id": f"{block_num:08x}" * 8, "name": name, **fields},
    }


def progress_message(block_num: int) -> dict[str, Any]:
    """Block-stream ``progress`` message."""
    return {"type": "progress", "data": {"block_num": block_num, "block_id": f"{block_num:08x}" * 8}}


def graphql_message(
    cursor: str,
    actions: list[dict[str, Any]] | None,
    block_num: int = 1,
    result_field: str = "searchTransactionsForward",
) -> dict[str, Any]:
    """GraphQL subscription ``data`` message; ``actions=None`` means no trace."""
    result: dict[str, Any] = {"cursor": cursor, "block": {"num": block_num, "id": f"blk{block_num}"}}
    if actions is not None:
        result["trace"] = {"matchingActions": [{"json": action} for action in actions]}
    return {"type": "data", "data": {result_field: result}}


def block_recording(blocks: int = 4, actions_per_block: int = 2, progress: bool = True) -> list[dict]:
    """Recording of ``blocks`` blocks starting at height 10."""
    messages = []
    for height in range(10, 10 + blocks):
        for index in range(actions_per_block):
            messages.append(action_message(height, f"transfer-{height}-{index}", amount=index))
        if progress:
            messages.append(progress_message(height))
    return messages


# =============================================================================
# Engine collaborators
# =============================================================================


class RecordingAdapter:
    """Stand-in for ``StreamAdapter`` that records opens and marks."""

    def __init__(self, events: list | None = None):
        self._events = list(events or [])
        self.opened = False
        self.opened_at: Any = None
        self.marks: list[Any] = []
        self.closed = False
        self.fail_mark = False

    async def open(self, start=None) -> None:
        self.opened = True
        self.opened_at = start

    async def mark(self, position) -> None:
        if self.fail_mark:
            raise TransportError("socket is gone")
        self.marks.append(position)

    async def close(self) -> None:
        self.closed = True

    async def events(self):
        for event in self._events:
            yield event


class FlakySink(MemorySink):
    """Memory sink whose next ``failures`` applies raise."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.closed = False

    async def apply(self, payload, position) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        await super().apply(payload, position)

    async def close(self) -> None:
        self.closed = True


class BrokenCursorStore(MemoryCursorStore):
    """Memory cursor store whose saves always fail."""

    async def save(self, stream_key, position) -> None:
        raise OSError("read-only file system")


@pytest.fixture
def cursor_store():
    return MemoryCursorStore()


@pytest.fixture
def sink():
    return FlakySink()


@pytest.fixture
def adapter():
    return RecordingAdapter()


@pytest.fixture
def make_engine(adapter, sink, cursor_store):
    """Factory for engines over the recording doubles."""

    def _make(**settings: Any) -> CheckpointEngine:
        settings.setdefault("stream_key", "test-stream")
        settings.setdefault("query", {"accounts": "eosio.token"})
        config = ConsumerConfig(**settings).validate()
        return CheckpointEngine(adapter, sink, cursor_store, config)

    return _make
