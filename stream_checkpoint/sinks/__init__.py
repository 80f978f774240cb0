"""
Sink implementations for committed payloads.

All sinks are idempotent under re-application of the same record, keyed by
the payload's natural key or by ``(position, payload)``.
"""

from .base import KeyFunc, Sink, record_key
from .console import ConsoleSink
from .jsonl import JsonlFileSink
from .memory import MemorySink
from .sqlite import SQLiteSink, SQLiteSinkConfig

__all__ = [
    "ConsoleSink",
    "JsonlFileSink",
    "KeyFunc",
    "MemorySink",
    "SQLiteSink",
    "SQLiteSinkConfig",
    "Sink",
    "record_key",
]
