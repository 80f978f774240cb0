"""
Tests for stream positions and the pending buffer.
"""

import pytest

from stream_checkpoint.buffer import PendingBuffer
from stream_checkpoint.position import (
    BLOCK_END,
    BlockPosition,
    CursorPosition,
    PositionKind,
    is_before,
    position_from_dict,
    position_to_dict,
)


class TestPositionEncoding:
    """Tests for position serialization."""

    @pytest.mark.parametrize(
        "position",
        [
            CursorPosition("opaque-token=="),
            CursorPosition("abc", block_num=12, block_id="00000c" * 10),
            CursorPosition("abc", block_num=12, ordinal=3),
            BlockPosition(123456),
            BlockPosition(7, BLOCK_END, "00000007" * 8),
        ],
    )
    def test_round_trip(self, position):
        """Positions survive serialization exactly, including informational fields."""
        restored = position_from_dict(position_to_dict(position))
        assert restored == position
        assert restored.to_dict() == position.to_dict()

    def test_kind_tag(self):
        assert CursorPosition("x").to_dict()["kind"] == PositionKind.CURSOR.value
        assert BlockPosition(1).to_dict()["kind"] == PositionKind.BLOCK.value

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError, match="Unknown position kind"):
            position_from_dict({"kind": "timestamp", "value": 1})

    def test_missing_kind_rejected(self):
        with pytest.raises(ValueError):
            position_from_dict({"token": "abc"})

    def test_empty_cursor_rejected(self):
        with pytest.raises(ValueError):
            CursorPosition("")

    def test_negative_height_rejected(self):
        with pytest.raises(ValueError):
            BlockPosition(-1)


class TestPositionOrdering:
    """Tests for block ordering and cursor opacity."""

    def test_blocks_order_by_height_then_ordinal(self):
        assert BlockPosition(5, 9) < BlockPosition(6, 0)
        assert BlockPosition(5, 0) < BlockPosition(5, 1)
        assert BlockPosition(5, 3) < BlockPosition(5, BLOCK_END)

    def test_block_id_ignored_by_comparison(self):
        assert BlockPosition(5, 0, "aaaa") == BlockPosition(5, 0, "bbbb")

    def test_is_before(self):
        assert is_before(BlockPosition(4), BlockPosition(5)) is True
        assert is_before(BlockPosition(5), BlockPosition(5)) is False

    def test_cursors_are_not_ordered(self):
        """Cursor tokens carry no client-side ordering."""
        assert is_before(CursorPosition("a"), CursorPosition("b")) is None
        assert is_before(CursorPosition("a"), BlockPosition(5)) is None

    def test_cursor_equality_by_token(self):
        assert CursorPosition("a", block_num=1) == CursorPosition("a", block_num=2)

    def test_cursor_ordinal_serialized_but_not_compared(self):
        first, second = CursorPosition("a", ordinal=0), CursorPosition("a", ordinal=1)

        assert first == second
        assert first.to_dict() != second.to_dict()
        assert second.to_dict()["ordinal"] == 1
        assert second.describe() == "cursor a[1]"

    def test_describe(self):
        assert BlockPosition(7, BLOCK_END).describe() == "#7 [end]"
        assert BlockPosition(7, 2).describe() == "#7 [2]"
        assert CursorPosition("tok").describe() == "cursor tok"


class TestPendingBuffer:
    """Tests for the pending buffer."""

    def test_append_preserves_order(self):
        buffer = PendingBuffer()
        for height in (3, 1, 2):
            buffer.append({"h": height}, BlockPosition(height))

        assert [item.payload["h"] for item in buffer.snapshot()] == [3, 1, 2]
        assert buffer.last_position == BlockPosition(2)

    def test_snapshot_prefix_and_discard(self):
        buffer = PendingBuffer()
        for height in range(4):
            buffer.append(height, BlockPosition(height))

        assert [item.payload for item in buffer.snapshot(2)] == [0, 1]
        buffer.discard(2)
        assert [item.payload for item in buffer.snapshot()] == [2, 3]

    def test_clear_reports_dropped(self):
        buffer = PendingBuffer()
        buffer.append("a", BlockPosition(1))
        buffer.append("b", BlockPosition(2))

        assert buffer.clear() == 2
        assert not buffer
        assert len(buffer) == 0
        assert buffer.last_position is None
