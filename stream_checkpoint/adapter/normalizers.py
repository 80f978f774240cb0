"""
Message normalizers.

A normalizer turns one raw transport message into zero or more
``StreamEvent`` values and translates positions back into the marker
shape the transport resumes from. Two message families are supported:

- Block streams (websocket style): ``{"type": "action_trace", "data":
  {"block_num": ..., "block_id": ..., ...}}`` plus ``progress``,
  ``listening``, ``error`` and ``complete`` messages. Positions are block
  heights; the marker is ``{"at_block_num": height}``.
- GraphQL subscriptions: ``{"type": "data", "data": {<result_field>:
  {"cursor": ..., "block": {...}, "trace": {"matchingActions": [...]}}}}``
  plus ``error`` and ``complete`` messages. A result without ``trace`` is
  a live progress marker. Positions are opaque cursors; the marker is
  ``{"cursor": token}``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from ..events import StreamEvent
from ..exceptions import ConfigurationError
from ..position import BLOCK_END, BlockPosition, CursorPosition, Position

logger = logging.getLogger(__name__)


class MessageNormalizer(ABC):
    """Maps raw transport messages to stream events and positions to markers."""

    @abstractmethod
    def normalize(self, message: dict[str, Any]) -> list[StreamEvent]:
        """Normalize one message.

        Raises:
            ValueError: If the message is malformed
        """

    @abstractmethod
    def to_marker(self, position: Position) -> dict[str, Any]:
        """Build the transport resume marker for a position."""

    def reset(self) -> None:
        """Forget per-connection state; called when the transport restarts."""


class BlockStreamNormalizer(MessageNormalizer):
    """Normalizer for block-height streams.

    Data events get a per-block ordinal counted in arrival order. The
    counter restarts when the block changes and on reconnect, so a block
    redelivered from its start gets the same ordinals again.
    """

    def __init__(
        self,
        data_types: tuple[str, ...] = ("action_trace",),
        payload_getter: Callable[[dict[str, Any]], Any] | None = None,
    ):
        """
        Args:
            data_types: Message types carrying data
            payload_getter: Extracts the payload from a message's ``data``
                (defaults to the whole ``data`` dict)
        """
        self.data_types = data_types
        self.payload_getter = payload_getter
        self._current_block: int | None = None
        self._next_ordinal = 0

    def reset(self) -> None:
        self._current_block = None
        self._next_ordinal = 0

    def normalize(self, message: dict[str, Any]) -> list[StreamEvent]:
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type in self.data_types:
            height, block_id = self._block_of(data)
            if height != self._current_block:
                self._current_block = height
                self._next_ordinal = 0
            position = BlockPosition(height, self._next_ordinal, block_id)
            self._next_ordinal += 1
            payload = self.payload_getter(data) if self.payload_getter else data
            return [StreamEvent.data(payload, position)]

        if message_type == "progress":
            height, block_id = self._block_of(data)
            return [StreamEvent.progress(BlockPosition(height, BLOCK_END, block_id))]

        if message_type == "error":
            return [StreamEvent.error(data, terminal=bool(message.get("terminal", False)))]

        if message_type == "complete":
            return [StreamEvent.complete()]

        if message_type == "listening":
            logger.debug("Stream is now listening")
        else:
            logger.debug(f"Ignoring message of type {message_type!r}")
        return []

    def to_marker(self, position: Position) -> dict[str, Any]:
        if not isinstance(position, BlockPosition):
            raise ConfigurationError(
                "position", "block streams resume from block positions", type(position).__name__
            )
        return {"at_block_num": position.height}

    @staticmethod
    def _block_of(data: dict[str, Any]) -> tuple[int, str | None]:
        try:
            return int(data["block_num"]), data.get("block_id")
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Message data has no valid block_num: {data!r}") from e


class GraphQLCursorNormalizer(MessageNormalizer):
    """Normalizer for cursor-based GraphQL subscriptions.

    Every matching action of a transaction becomes one data event carrying
    the transaction's cursor; the last one is flagged as a boundary.
    """

    def __init__(
        self,
        result_field: str = "searchTransactionsForward",
        payload_getter: Callable[[dict[str, Any]], Any] | None = None,
    ):
        """
        Args:
            result_field: Field of ``data`` holding the subscription result
            payload_getter: Extracts the payload from a matching action
                (defaults to the action's ``json`` field)
        """
        self.result_field = result_field
        self.payload_getter = payload_getter

    def normalize(self, message: dict[str, Any]) -> list[StreamEvent]:
        message_type = message.get("type")

        if message_type == "data":
            return self._normalize_result(message)

        if message_type == "error":
            return [
                StreamEvent.error(
                    message.get("errors"), terminal=bool(message.get("terminal", False))
                )
            ]

        if message_type == "complete":
            return [StreamEvent.complete()]

        logger.debug(f"Ignoring message of type {message_type!r}")
        return []

    def _normalize_result(self, message: dict[str, Any]) -> list[StreamEvent]:
        try:
            result = message["data"][self.result_field]
            cursor = result["cursor"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Data message has no {self.result_field}.cursor") from e

        block = result.get("block") or {}
        position = CursorPosition(cursor, block.get("num"), block.get("id"))

        trace = result.get("trace")
        if not trace:
            return [StreamEvent.progress(position)]

        actions = trace.get("matchingActions") or []
        if not actions:
            # A transaction with nothing to keep still moves the cursor forward
            return [StreamEvent.progress(position)]

        last = len(actions) - 1
        return [
            StreamEvent.data(
                self._payload_of(action),
                replace(position, ordinal=index),
                boundary=index == last,
            )
            for index, action in enumerate(actions)
        ]

    def _payload_of(self, action: dict[str, Any]) -> Any:
        if self.payload_getter:
            return self.payload_getter(action)
        return action.get("json", action)

    def to_marker(self, position: Position) -> dict[str, Any]:
        if not isinstance(position, CursorPosition):
            raise ConfigurationError(
                "position", "cursor streams resume from cursor positions", type(position).__name__
            )
        return {"cursor": position.token}
