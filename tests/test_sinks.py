"""
Tests for sinks.

Every sink must absorb re-application of already committed records.
"""

import logging

import pytest

from stream_checkpoint.position import BlockPosition, CursorPosition
from stream_checkpoint.sinks import (
    ConsoleSink,
    JsonlFileSink,
    MemorySink,
    SQLiteSink,
    SQLiteSinkConfig,
    record_key,
)

TRANSFER = {"from": "alice", "to": "bob", "quantity": "1.0000 KARMA"}


class TestRecordKey:
    """Tests for record identity."""

    def test_same_payload_and_position_share_key(self):
        assert record_key(TRANSFER, BlockPosition(5)) == record_key(dict(TRANSFER), BlockPosition(5))

    def test_position_distinguishes_identical_payloads(self):
        """Two identical transfers in different blocks are different records."""
        assert record_key(TRANSFER, BlockPosition(5)) != record_key(TRANSFER, BlockPosition(6))

    def test_key_func_uses_natural_key(self):
        key = record_key({"trx_id": "abc"}, BlockPosition(5), key_func=lambda p: p["trx_id"])
        assert key == "abc"


class TestMemorySink:
    """Tests for the in-memory sink."""

    @pytest.mark.asyncio
    async def test_reapply_is_idempotent(self):
        sink = MemorySink()
        await sink.apply(TRANSFER, BlockPosition(5))
        await sink.apply(TRANSFER, BlockPosition(5))

        assert sink.payloads == [TRANSFER]
        assert sink.apply_count == 2

    @pytest.mark.asyncio
    async def test_first_arrival_order_kept(self):
        sink = MemorySink(key_func=lambda p: p["n"])
        await sink.apply({"n": 2}, BlockPosition(2))
        await sink.apply({"n": 1}, BlockPosition(3))
        await sink.apply({"n": 2}, BlockPosition(2))

        assert sink.payloads == [{"n": 2}, {"n": 1}]
        assert sink.position_of("2") == BlockPosition(2)


class TestJsonlFileSink:
    """Tests for the JSONL sink."""

    @pytest.mark.asyncio
    async def test_append_and_read(self, tmp_path):
        sink = JsonlFileSink(tmp_path / "out" / "events.jsonl")
        await sink.open()
        await sink.apply(TRANSFER, CursorPosition("c1"))

        records = await sink.read_all()

        assert len(records) == 1
        assert records[0]["payload"] == TRANSFER
        assert records[0]["position"] == {"kind": "cursor", "token": "c1"}

    @pytest.mark.asyncio
    async def test_reapply_across_instances_is_idempotent(self, tmp_path):
        """A restarted process skips records already in the file."""
        path = tmp_path / "events.jsonl"
        first = JsonlFileSink(path)
        await first.apply(TRANSFER, BlockPosition(5))

        second = JsonlFileSink(path)
        await second.open()
        await second.apply(TRANSFER, BlockPosition(5))
        await second.apply(TRANSFER, BlockPosition(6))

        records = await second.read_all()
        assert [r["position"]["height"] for r in records] == [5, 6]

    @pytest.mark.asyncio
    async def test_truncated_last_line_repaired_on_open(self, tmp_path):
        """A crash mid-append leaves a partial line that is cut off on open."""
        path = tmp_path / "events.jsonl"
        sink = JsonlFileSink(path)
        await sink.apply(TRANSFER, BlockPosition(5))
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"key": "partial", "payl')

        reopened = JsonlFileSink(path)
        await reopened.open()
        assert len(await reopened.read_all()) == 1

        # The redelivered record must land on its own line
        await reopened.apply({"n": 2}, BlockPosition(6))

        third = JsonlFileSink(path)
        await third.open()
        records = await third.read_all()
        assert [r["payload"] for r in records] == [TRANSFER, {"n": 2}]
        assert path.read_text(encoding="utf-8").endswith("}\n")

    @pytest.mark.asyncio
    async def test_file_of_only_a_partial_line_is_emptied(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text('{"key": "partial"', encoding="utf-8")

        sink = JsonlFileSink(path)
        await sink.apply({"n": 1}, BlockPosition(1))

        assert [r["payload"] for r in await sink.read_all()] == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_dedup_window_keeps_recent_keys(self, tmp_path):
        sink = JsonlFileSink(tmp_path / "events.jsonl", dedup_window=2)
        for height in (1, 2, 3):
            await sink.apply({"n": height}, BlockPosition(height))

        assert len(sink._seen) == 2
        await sink.apply({"n": 3}, BlockPosition(3))
        assert len(await sink.read_all()) == 3

    @pytest.mark.asyncio
    async def test_dedup_window_applies_when_loading(self, tmp_path):
        path = tmp_path / "events.jsonl"
        writer = JsonlFileSink(path)
        for height in range(5):
            await writer.apply({"n": height}, BlockPosition(height))

        reader = JsonlFileSink(path, dedup_window=3)
        await reader.open()
        assert len(reader._seen) == 3

    def test_dedup_window_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            JsonlFileSink(tmp_path / "events.jsonl", dedup_window=0)


class TestSQLiteSink:
    """Tests for the SQLite sink."""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self):
        sink = SQLiteSink(SQLiteSinkConfig(db_path=":memory:"))
        await sink.open()
        await sink.apply(TRANSFER, BlockPosition(5))
        await sink.apply(TRANSFER, BlockPosition(5))
        await sink.flush()

        rows = await sink.fetch_all()

        assert rows == [(BlockPosition(5), TRANSFER)]
        await sink.close()

    @pytest.mark.asyncio
    async def test_flush_makes_commit_durable(self, tmp_path):
        config = SQLiteSinkConfig(db_path=tmp_path / "sink.db")
        sink = SQLiteSink(config)
        await sink.apply({"n": 1}, BlockPosition(1))
        await sink.apply({"n": 2}, BlockPosition(2))
        await sink.flush()
        await sink.close()

        reopened = SQLiteSink(config)
        rows = await reopened.fetch_all()
        assert [payload for _, payload in rows] == [{"n": 1}, {"n": 2}]
        await reopened.close()

    @pytest.mark.asyncio
    async def test_unflushed_writes_are_not_durable(self, tmp_path):
        config = SQLiteSinkConfig(db_path=tmp_path / "sink.db")
        sink = SQLiteSink(config)
        await sink.open()
        await sink.apply({"n": 1}, BlockPosition(1))
        await sink.close()

        reopened = SQLiteSink(config)
        assert await reopened.fetch_all() == []
        await reopened.close()


class TestConsoleSink:
    """Tests for the logging sink."""

    @pytest.mark.asyncio
    async def test_logs_each_commit(self, caplog):
        sink = ConsoleSink()
        with caplog.at_level(logging.INFO, logger="stream_checkpoint.sinks.console"):
            await sink.apply(TRANSFER, BlockPosition(5))
            await sink.apply(TRANSFER, BlockPosition(5))

        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 2
        assert "#5 [0]" in messages[0]
