"""
Tests for structured logging utilities.
"""

import io
import json
import logging
import sys

from stream_checkpoint.logging_utils import (
    StreamLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
)
from stream_checkpoint.position import BlockPosition, CursorPosition


def make_record(**extra):
    record = logging.LogRecord(
        name="stream_checkpoint.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Committed %d event(s)",
        args=(3,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    """Tests for the JSON formatter."""

    def test_standard_fields(self):
        output = json.loads(StructuredJsonFormatter().format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "stream_checkpoint.engine"
        assert output["message"] == "Committed 3 event(s)"
        assert "timestamp" in output
        assert "context" not in output

    def test_commit_fields_at_top_level(self):
        record = make_record(
            stream_key="karma", position=BlockPosition(5, 2), applied=3, duration_ms=12
        )
        output = json.loads(StructuredJsonFormatter().format(record))

        assert output["stream_key"] == "karma"
        assert output["position"] == {"kind": "block", "height": 5, "ordinal": 2}
        assert output["at"] == "#5 [2]"
        assert output["applied"] == 3
        assert output["duration_ms"] == 12

    def test_cursor_position_serialized(self):
        record = make_record(position=CursorPosition("c1", ordinal=1))
        output = json.loads(StructuredJsonFormatter().format(record))

        assert output["position"] == {"kind": "cursor", "token": "c1", "ordinal": 1}
        assert output["at"] == "cursor c1[1]"

    def test_other_extras_grouped_under_context(self):
        output = json.loads(StructuredJsonFormatter().format(make_record(sink="jsonl", handle=object())))

        assert output["context"]["sink"] == "jsonl"
        assert output["context"]["handle"].startswith("<object object")
        assert "sink" not in output

    def test_exception_included(self):
        try:
            raise RuntimeError("sink offline")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        output = json.loads(StructuredJsonFormatter().format(record))
        assert "RuntimeError: sink offline" in output["exception"]


class TestLoggerHelpers:
    """Tests for logger configuration helpers."""

    def test_configure_replaces_own_handlers_only(self):
        name = "stream_checkpoint.tests.configure"
        logger = logging.getLogger(name)
        other = logging.NullHandler()
        logger.addHandler(other)

        configure_structured_logging(logging.DEBUG, logger_name=name)
        configure_structured_logging(logging.WARNING, logger_name=name)

        structured = [h for h in logger.handlers if isinstance(h.formatter, StructuredJsonFormatter)]
        assert len(structured) == 1
        assert other in logger.handlers
        assert logger.level == logging.WARNING
        logger.handlers.clear()

    def test_configure_writes_json_lines(self):
        name = "stream_checkpoint.tests.output"
        buffer = io.StringIO()
        logger = configure_structured_logging(logging.INFO, logger_name=name, stream=buffer)
        logger.propagate = False

        logger.info("Stream completed", extra={"stream_key": "karma"})

        line = json.loads(buffer.getvalue().strip())
        assert line["message"] == "Stream completed"
        assert line["stream_key"] == "karma"
        logger.handlers.clear()
        logger.propagate = True

    def test_azure_loggers_kept_quiet(self):
        configure_structured_logging(logging.DEBUG, logger_name="stream_checkpoint.tests.azure")
        assert logging.getLogger("azure").level == logging.WARNING
        logging.getLogger("stream_checkpoint.tests.azure").handlers.clear()

    def test_adapter_stamps_stream_key(self, caplog):
        adapter = StreamLoggerAdapter(logging.getLogger("stream_checkpoint.tests.adapter"), {"stream_key": "karma"})

        with caplog.at_level(logging.INFO, logger="stream_checkpoint.tests.adapter"):
            adapter.info("Stream reconnected", extra={"reconnects": 2})

        record = caplog.records[0]
        assert record.stream_key == "karma"
        assert record.reconnects == 2
        assert record.getMessage() == "[karma] Stream reconnected"
