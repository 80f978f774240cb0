"""
Stream adapter: the boundary between a transport and the engine.

The transport invokes callbacks from its own event loop. The adapter
normalizes every message and pushes the resulting events, together with an
in-band RECONNECT event for each restart, onto one FIFO queue. Because the
transport fires its restart hook before redelivering anything, the
RECONNECT event always reaches the engine ahead of the first redelivered
event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from ..events import EventKind, StreamEvent
from ..exceptions import ConfigurationError, TransportError
from ..position import Position
from .normalizers import MessageNormalizer
from .transport import Transport, TransportStream

logger = logging.getLogger(__name__)

_CLOSED = object()


class StreamAdapter:
    """Serializes a transport subscription into an ordered event iterator."""

    def __init__(
        self,
        transport: Transport,
        query: dict[str, Any],
        normalizer: MessageNormalizer,
    ):
        """
        Args:
            transport: Transport used to open the subscription
            query: Opaque subscription parameters, passed through verbatim
            normalizer: Message normalizer matching the transport's messages

        Raises:
            ConfigurationError: If the query is empty
        """
        if not query:
            raise ConfigurationError("query", "subscription parameters are required")

        self.transport = transport
        self.query = query
        self.normalizer = normalizer
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._stream: TransportStream | None = None
        self._closed = False
        self.restarts = 0

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    @property
    def queued(self) -> int:
        """Events received from the transport but not yet consumed."""
        return self._queue.qsize()

    async def open(self, start: Position | None = None) -> None:
        """Subscribe, resuming from ``start`` when given."""
        if self._stream is not None:
            return

        marker = self.normalizer.to_marker(start) if start is not None else None
        logger.info(f"Subscribing with start marker {marker}")
        self._stream = await self.transport.subscribe(self.query, self._on_message, start=marker)
        self._stream.on_restart = self._on_restart

    def _on_message(self, message: dict[str, Any]) -> None:
        if self._closed:
            return

        try:
            events = self.normalizer.normalize(message)
        except ValueError as e:
            # A message we cannot place must stop the consumer, never be skipped
            logger.error(f"Unable to normalize message: {e}")
            events = [StreamEvent.error({"reason": str(e), "message": message}, terminal=True)]

        for event in events:
            self._queue.put_nowait(event)

    def _on_restart(self) -> None:
        if self._closed:
            return

        self.restarts += 1
        self.normalizer.reset()
        logger.info(f"Transport restarted (restart #{self.restarts}), redelivery follows")
        self._queue.put_nowait(StreamEvent.reconnect())

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield events in arrival order until COMPLETE or ``close()``."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
            if item.kind == EventKind.COMPLETE:
                return

    async def mark(self, position: Position) -> None:
        """Ask the transport to resume from ``position`` on reconnection."""
        stream = self._ensure_stream()
        await stream.mark(self.normalizer.to_marker(position))

    async def close(self) -> None:
        """Close the subscription and end ``events()``."""
        if self._closed:
            return

        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._stream is not None:
            await self._stream.close()
            logger.info("Subscription closed")

    def _ensure_stream(self) -> TransportStream:
        if self._stream is not None:
            return self._stream

        raise TransportError("Stream should be open at this point (call open() first)")
