"""
Custom exceptions for the checkpointed stream consumer.

Every component (engine, cursor stores, sinks, adapter) raises these
exceptions so callers can tell fatal conditions from recoverable ones.
"""


class StreamCheckpointError(Exception):
    """Base exception for all stream checkpoint errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(StreamCheckpointError):
    """Raised when the transport reports an error.

    Non-terminal errors are expected to heal through the transport's own
    reconnect logic. Terminal errors are fatal for the engine.
    """

    def __init__(self, message: str, terminal: bool = False, errors: object | None = None):
        details: dict = {"terminal": terminal}
        if errors is not None:
            details["errors"] = errors
        super().__init__(message, details)
        self.terminal = terminal
        self.errors = errors


class SinkWriteError(StreamCheckpointError):
    """Raised when applying committed payloads to the sink fails."""

    def __init__(self, sink: str, position: str | None = None, cause: Exception | None = None):
        details = {"sink": sink}
        if position:
            details["position"] = position
        if cause:
            details["cause"] = str(cause)
        message = f"Sink write failed on {sink}"
        if position:
            message += f" at {position}"
        super().__init__(message, details)
        self.sink = sink
        self.position = position
        self.cause = cause


class CursorPersistError(StreamCheckpointError):
    """Raised when a cursor store cannot load or save a position."""

    def __init__(self, operation: str, stream_key: str, cause: Exception | None = None):
        details = {"operation": operation, "stream_key": stream_key}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Cursor {operation} failed for stream {stream_key}", details)
        self.operation = operation
        self.stream_key = stream_key
        self.cause = cause


class ConfigurationError(StreamCheckpointError):
    """Raised when consumer or backend configuration is invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid configuration for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class EngineNotRunningError(StreamCheckpointError):
    """Raised when an event is handed to an engine that has failed or stopped."""

    def __init__(self, stream_key: str, state: str):
        super().__init__(
            f"Engine for stream {stream_key} is not accepting events (state: {state})",
            {"stream_key": stream_key, "state": state},
        )
        self.stream_key = stream_key
        self.state = state


class StorageIOError(StreamCheckpointError):
    """Raised when a local file operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause
