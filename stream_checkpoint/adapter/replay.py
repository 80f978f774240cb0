"""
In-memory replay transport.

Replays a finite list of recorded messages with the same resume semantics
as a live socket: marks are remembered, and after a (scripted) disconnect
the restart hook fires and delivery resumes from the last mark,
inclusively. Used by tests and by the replay script.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from typing import Any

from .transport import MessageCallback, RestartCallback

logger = logging.getLogger(__name__)


def _message_cursor(message: dict[str, Any]) -> str | None:
    data = message.get("data")
    if not isinstance(data, dict):
        return None
    for value in data.values():
        if isinstance(value, dict) and "cursor" in value:
            return value["cursor"]
    return None


def _message_block_num(message: dict[str, Any]) -> int | None:
    data = message.get("data")
    if isinstance(data, dict) and "block_num" in data:
        return int(data["block_num"])
    return None


class ReplayStream:
    """A subscription over a ``ReplayTransport``'s messages."""

    def __init__(
        self,
        transport: ReplayTransport,
        on_message: MessageCallback,
        start: dict[str, Any] | None,
    ):
        self.transport = transport
        self.on_message = on_message
        self.on_restart: RestartCallback | None = None
        self.marker = dict(start) if start else None
        self.marks: list[dict[str, Any]] = []
        self.restarts = 0
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def mark(self, marker: dict[str, Any]) -> None:
        self.marker = dict(marker)
        self.marks.append(self.marker)

    async def close(self) -> None:
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def join(self) -> None:
        """Wait until every message (and the completion) has been delivered."""
        if self._task is not None:
            await self._task

    def locate(self, marker: dict[str, Any] | None) -> int:
        """Index of the first message to deliver when resuming from ``marker``.

        Raises:
            ValueError: If the marker points nowhere in the recording
        """
        messages = self.transport.messages
        if not marker:
            return 0

        if "cursor" in marker:
            for index, message in enumerate(messages):
                if _message_cursor(message) == marker["cursor"]:
                    return index
            raise ValueError(f"Unknown cursor: {marker['cursor']}")

        if "at_block_num" in marker:
            target = int(marker["at_block_num"])
            for index, message in enumerate(messages):
                block_num = _message_block_num(message)
                if block_num is not None and block_num >= target:
                    return index
            return len(messages)

        raise ValueError(f"Unsupported marker: {marker}")

    async def _pump(self) -> None:
        messages = self.transport.messages
        disconnects = set(self.transport.disconnect_after)
        try:
            index = self.locate(self.marker)
            while index < len(messages):
                if self._closed:
                    return
                self.on_message(messages[index])

                if index in disconnects:
                    disconnects.discard(index)
                    self.restarts += 1
                    # Let the consumer catch up before the socket "comes back"
                    await asyncio.sleep(0)
                    logger.debug(f"Simulated disconnect after message {index}, resuming at {self.marker}")
                    if self.on_restart is not None:
                        self.on_restart()
                    index = self.locate(self.marker)
                    continue

                index += 1
                await asyncio.sleep(0)

            if self.transport.complete and not self._closed:
                self.on_message({"type": "complete"})
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Replay stream failed")
            raise


class ReplayTransport:
    """Transport replaying recorded messages.

    Args:
        messages: Recorded transport messages, in delivery order
        disconnect_after: Message indices after which the connection drops
            once and resumes from the last mark
        complete: Send a ``complete`` message after the last one
    """

    def __init__(
        self,
        messages: Iterable[dict[str, Any]],
        disconnect_after: Iterable[int] = (),
        complete: bool = True,
    ):
        self.messages = list(messages)
        self.disconnect_after = tuple(disconnect_after)
        self.complete = complete
        self.streams: list[ReplayStream] = []

    async def subscribe(
        self,
        query: dict[str, Any],
        on_message: MessageCallback,
        start: dict[str, Any] | None = None,
    ) -> ReplayStream:
        stream = ReplayStream(self, on_message, start)
        self.streams.append(stream)
        stream.start()
        return stream
