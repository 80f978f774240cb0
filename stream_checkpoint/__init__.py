"""
Stream Checkpoint

Checkpointed, reconnect-safe consumer for blockchain event streams.

Provides:
- Cursor and block-height positions behind one Position type
- A checkpoint engine with pluggable commit policies
- Durable cursor stores (file, SQLite, Cosmos DB, memory)
- Idempotent sinks (JSONL, SQLite, memory, console)
- Transport adapters for block streams and GraphQL cursor subscriptions

Usage:

    >>> from stream_checkpoint import (
    ...     BlockStreamNormalizer, ConsumerConfig, JsonlFileSink, create_engine
    ... )
    >>> config = ConsumerConfig.from_yaml("consumer.yaml")
    >>> engine = await create_engine(
    ...     config, transport, BlockStreamNormalizer(), JsonlFileSink("events.jsonl")
    ... )
    >>> snapshot = await engine.run()

Cursor Stores:

    # One JSON document per stream key
    from stream_checkpoint.cursors import FileCursorStore

    # SQLite for embedded applications
    from stream_checkpoint.cursors.sqlite import SQLiteCursorStore, SQLiteCursorConfig

    # Cosmos DB for consumers running on several hosts
    from stream_checkpoint.cursors.cosmos import CosmosCursorStore, CosmosCursorConfig
"""

from .adapter import (
    BlockStreamNormalizer,
    GraphQLCursorNormalizer,
    MessageNormalizer,
    ReplayTransport,
    StreamAdapter,
    Transport,
    TransportStream,
)
from .buffer import PendingBuffer, PendingItem
from .config import ConsumerConfig
from .cursors import CursorStore, FileCursorStore, MemoryCursorStore, create_cursor_store
from .engine import (
    CheckpointEngine,
    CheckpointSnapshot,
    CommitResult,
    EngineState,
    create_engine,
)
from .events import EventKind, StreamEvent
from .exceptions import (
    ConfigurationError,
    CursorPersistError,
    EngineNotRunningError,
    SinkWriteError,
    StorageIOError,
    StreamCheckpointError,
    TransportError,
)
from .logging_utils import configure_structured_logging
from .policy import (
    BatchPolicy,
    BlockAdvancePolicy,
    BoundaryPolicy,
    CommitPolicy,
    EveryEventPolicy,
    ProgressOnlyPolicy,
    policy_from_name,
)
from .position import BLOCK_END, BlockPosition, CursorPosition, Position, position_from_dict
from .sinks import ConsoleSink, JsonlFileSink, MemorySink, SQLiteSink, Sink

__version__ = "0.1.0"

__all__ = [
    # Engine
    "CheckpointEngine",
    "CheckpointSnapshot",
    "CommitResult",
    "EngineState",
    "create_engine",
    # Configuration
    "ConsumerConfig",
    # Positions and events
    "BLOCK_END",
    "BlockPosition",
    "CursorPosition",
    "EventKind",
    "PendingBuffer",
    "PendingItem",
    "Position",
    "StreamEvent",
    "position_from_dict",
    # Policies
    "BatchPolicy",
    "BlockAdvancePolicy",
    "BoundaryPolicy",
    "CommitPolicy",
    "EveryEventPolicy",
    "ProgressOnlyPolicy",
    "policy_from_name",
    # Cursor stores
    "CursorStore",
    "FileCursorStore",
    "MemoryCursorStore",
    "create_cursor_store",
    # Sinks
    "ConsoleSink",
    "JsonlFileSink",
    "MemorySink",
    "SQLiteSink",
    "Sink",
    # Transport
    "BlockStreamNormalizer",
    "GraphQLCursorNormalizer",
    "MessageNormalizer",
    "ReplayTransport",
    "StreamAdapter",
    "Transport",
    "TransportStream",
    # Exceptions
    "ConfigurationError",
    "CursorPersistError",
    "EngineNotRunningError",
    "SinkWriteError",
    "StorageIOError",
    "StreamCheckpointError",
    "TransportError",
    # Logging
    "configure_structured_logging",
]
