"""
Structured JSON logging for long-running stream consumers.

Consumers usually run unattended in containers, so log records are emitted
as single-line JSON objects. The fields the engine attaches to its records
(stream key, position, commit counters) are lifted to the top level where
log aggregators can index them; any other ``extra`` lands under ``context``.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

# Fields the engine passes via ``extra``; emitted at the top level.
STREAM_FIELDS = ("stream_key", "position", "applied", "duration_ms", "reconnects", "dropped", "terminal")

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def _jsonable(value: Any) -> Any:
    """Positions and other model objects serialize through their ``to_dict``."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for consumer log records.

    Every line carries ``timestamp`` (UTC, taken from the record), ``level``,
    ``logger`` and ``message``. Stream fields from ``STREAM_FIELDS`` follow at
    the top level, a ``position`` additionally gets a human-readable ``at``
    label, and remaining extras are grouped under ``context``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in STREAM_FIELDS:
                entry[key] = _jsonable(value)
                if key == "position" and hasattr(value, "describe"):
                    entry["at"] = value.describe()
            else:
                context[key] = _jsonable(value)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "stream_checkpoint",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send consumer logs to ``stream`` (stdout by default) as JSON lines.

    ``logger_name=None`` configures the root logger, for scripts that want
    their own records in the same format.

    Only handlers previously installed by this function are replaced, so
    calling it twice does not duplicate output. The Azure SDK loggers are held
    at WARNING or above since they log every Cosmos request at INFO.
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)

    logging.getLogger("azure").setLevel(max(level, logging.WARNING))
    return logger


class StreamLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps every record with the engine's ``stream_key``.

    Messages are prefixed with the key as well, so plain-text handlers can
    still tell engines sharing one process apart.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[{self.extra['stream_key']}] {msg}", kwargs
