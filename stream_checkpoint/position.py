"""
Stream positions.

A position marks how far a stream has durably progressed. Two encodings
exist, depending on what the transport can resume from:

- CursorPosition: an opaque resumption token supplied by the transport and
  echoed back verbatim. Tokens cannot be compared client-side.
- BlockPosition: a block height plus a transaction/action ordinal within
  the block, ordered lexicographically by ``(height, ordinal)``.

Both round-trip exactly through ``to_dict()`` / ``position_from_dict()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Ordinal used for "the whole block has been observed" (progress markers).
BLOCK_END = 2**31 - 1


class PositionKind(Enum):
    """Encoding of a position."""

    CURSOR = "cursor"
    BLOCK = "block"


def _short_block(block_id: str | None, block_num: int) -> str:
    if not block_id:
        return f"#{block_num}"
    return f"{block_id[:8]}...{block_id[-8:]} ({block_num})"


@dataclass(frozen=True)
class CursorPosition:
    """Opaque resumption token.

    Attributes:
        token: Transport cursor, echoed back verbatim on resume
        block_num: Block number the cursor points into (informational only)
        block_id: Block ID the cursor points into (informational only)
        ordinal: Index of the action within the cursor's transaction; part
            of record identity, ignored when comparing positions
    """

    token: str
    block_num: int | None = field(default=None, compare=False)
    block_id: str | None = field(default=None, compare=False)
    ordinal: int | None = field(default=None, compare=False)

    kind = PositionKind.CURSOR

    def __post_init__(self) -> None:
        if not isinstance(self.token, str) or not self.token:
            raise ValueError("CursorPosition token must be a non-empty string")

    def describe(self) -> str:
        text = f"cursor {self.token}"
        if self.ordinal is not None:
            text += f"[{self.ordinal}]"
        if self.block_num is not None:
            text += f" @ {_short_block(self.block_id, self.block_num)}"
        return text

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "token": self.token}
        if self.block_num is not None:
            data["block_num"] = self.block_num
        if self.block_id is not None:
            data["block_id"] = self.block_id
        if self.ordinal is not None:
            data["ordinal"] = self.ordinal
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CursorPosition:
        return cls(
            token=data["token"],
            block_num=data.get("block_num"),
            block_id=data.get("block_id"),
            ordinal=data.get("ordinal"),
        )


@dataclass(frozen=True, order=True)
class BlockPosition:
    """Block height with an ordinal inside the block.

    Attributes:
        height: Block number
        ordinal: Position of the event inside the block (0-based);
            ``BLOCK_END`` means the whole block
        block_id: Block ID (informational only, ignored by comparisons)
    """

    height: int
    ordinal: int = 0
    block_id: str | None = field(default=None, compare=False)

    kind = PositionKind.BLOCK

    def __post_init__(self) -> None:
        if self.height < 0:
            raise ValueError(f"BlockPosition height must be >= 0, got {self.height}")
        if self.ordinal < 0:
            raise ValueError(f"BlockPosition ordinal must be >= 0, got {self.ordinal}")

    @property
    def is_block_end(self) -> bool:
        return self.ordinal == BLOCK_END

    def describe(self) -> str:
        label = _short_block(self.block_id, self.height)
        if self.is_block_end:
            return f"{label} [end]"
        return f"{label} [{self.ordinal}]"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "height": self.height,
            "ordinal": self.ordinal,
        }
        if self.block_id is not None:
            data["block_id"] = self.block_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockPosition:
        return cls(
            height=int(data["height"]),
            ordinal=int(data.get("ordinal", 0)),
            block_id=data.get("block_id"),
        )


Position = Union[CursorPosition, BlockPosition]


def position_to_dict(position: Position) -> dict[str, Any]:
    """Serialize a position to a JSON-compatible dict tagged with its kind."""
    return position.to_dict()


def position_from_dict(data: dict[str, Any]) -> Position:
    """Deserialize a position produced by ``position_to_dict``.

    Raises:
        ValueError: If the kind tag is missing or unknown
    """
    try:
        kind = PositionKind(data.get("kind"))
    except ValueError:
        raise ValueError(f"Unknown position kind: {data.get('kind')!r}") from None

    if kind == PositionKind.CURSOR:
        return CursorPosition.from_dict(data)
    return BlockPosition.from_dict(data)


def is_before(position: Position, other: Position) -> bool | None:
    """Check whether ``position`` lies strictly before ``other``.

    Returns:
        True/False for two block positions, None when either side is an
        opaque cursor (no client-side ordering is possible)
    """
    if isinstance(position, BlockPosition) and isinstance(other, BlockPosition):
        return position < other
    return None
