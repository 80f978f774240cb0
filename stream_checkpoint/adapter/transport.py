"""
Transport contract.

The transport owns the socket or subscription, its reconnect delays and
its wire format. All it must offer is:

- ``subscribe(query, on_message, start=marker)`` returning a stream
- ``stream.mark(marker)``: resume point for the next reconnection
- ``stream.on_restart``: called after a reconnection, before redelivery
- ``stream.close()``

Markers are plain dicts whose shape is transport-specific (for example
``{"cursor": "..."}`` or ``{"at_block_num": 1234}``); normalizers build
them from positions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

MessageCallback = Callable[[dict[str, Any]], None]
RestartCallback = Callable[[], None]


@runtime_checkable
class TransportStream(Protocol):
    """A live subscription."""

    on_restart: RestartCallback | None

    async def mark(self, marker: dict[str, Any]) -> None:
        """Record the resume point used on the next reconnection."""
        ...

    async def close(self) -> None:
        """Terminate the subscription."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Factory for subscriptions."""

    async def subscribe(
        self,
        query: dict[str, Any],
        on_message: MessageCallback,
        start: dict[str, Any] | None = None,
    ) -> TransportStream:
        """Open a subscription delivering messages to ``on_message`` in order."""
        ...
