"""
Consumer configuration.

Configuration can be provided directly, via environment variables, or via
a YAML file with a ``stream_checkpoint`` section:

```yaml
stream_checkpoint:
  stream_key: karma-transfers
  query:
    accounts: therealkarma
    action_names: transfer
    with_progress: 10
  commit_policy: on_block_advance
  cursor_backend: file
  cursor_path: ~/.stream_checkpoint/cursors
```

Environment Variables:
    STREAM_CHECKPOINT_STREAM_KEY: Stream identifier (cursor store key)
    STREAM_CHECKPOINT_QUERY: Subscription parameters as a JSON object
    STREAM_CHECKPOINT_COMMIT_POLICY: Commit policy name (default: every_event)
    STREAM_CHECKPOINT_BATCH_SIZE: Batch size for the batch policy (default: 100)
    STREAM_CHECKPOINT_CURSOR_BACKEND: memory | file | sqlite | cosmos (default: file)
    STREAM_CHECKPOINT_CURSOR_PATH: Directory (file) or database path (sqlite)
    STREAM_CHECKPOINT_FLUSH_ON_COMPLETE: Final commit on completion (default: true)
    STREAM_CHECKPOINT_FLUSH_ON_STOP: Final commit on graceful stop (default: true)
    STREAM_CHECKPOINT_SKIP_REPLAYED: Drop redelivered block events already committed (default: true)
    STREAM_CHECKPOINT_SHUTDOWN_TIMEOUT: Graceful drain deadline in seconds (default: 30)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .cursors import CURSOR_BACKENDS
from .exceptions import ConfigurationError
from .policy import POLICIES, CommitPolicy, policy_from_name

ENV_PREFIX = "STREAM_CHECKPOINT_"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ConsumerConfig:
    """Settings for one checkpointed stream consumer.

    Attributes:
        stream_key: Key under which the position is persisted; distinct per stream
        query: Opaque subscription parameters handed to the transport
        commit_policy: Name of the commit-trigger policy
        batch_size: Pending items per commit for the ``batch`` policy
        cursor_backend: Cursor store backend name
        cursor_path: Backend location (directory or database file)
        flush_on_complete: Commit remaining items when the stream completes
        flush_on_stop: Commit remaining items on graceful stop
        skip_replayed: Drop redelivered block events strictly before the
            last committed position
        shutdown_timeout: Seconds to wait for an in-flight commit on stop
    """

    stream_key: str
    query: dict[str, Any] = field(default_factory=dict)
    commit_policy: str = "every_event"
    batch_size: int = 100
    cursor_backend: str = "file"
    cursor_path: str | None = None
    flush_on_complete: bool = True
    flush_on_stop: bool = True
    skip_replayed: bool = True
    shutdown_timeout: float = 30.0

    def validate(self) -> ConsumerConfig:
        """Check settings; returns self for chaining.

        Raises:
            ConfigurationError: On the first invalid setting
        """
        if not self.stream_key or not self.stream_key.strip():
            raise ConfigurationError("stream_key", "must not be empty")
        if not isinstance(self.query, dict) or not self.query:
            raise ConfigurationError("query", "subscription parameters are required")
        if self.commit_policy not in POLICIES:
            raise ConfigurationError(
                "commit_policy", f"expected one of {sorted(POLICIES)}", self.commit_policy
            )
        if self.batch_size < 1:
            raise ConfigurationError("batch_size", "must be >= 1", str(self.batch_size))
        if self.cursor_backend not in CURSOR_BACKENDS:
            raise ConfigurationError(
                "cursor_backend", f"expected one of {', '.join(CURSOR_BACKENDS)}", self.cursor_backend
            )
        if self.shutdown_timeout < 0:
            raise ConfigurationError(
                "shutdown_timeout", "must be >= 0", str(self.shutdown_timeout)
            )
        return self

    def build_policy(self) -> CommitPolicy:
        """Instantiate the configured commit policy."""
        if self.commit_policy == "batch":
            return policy_from_name("batch", max_pending=self.batch_size)
        return policy_from_name(self.commit_policy)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerConfig:
        """Create config from a plain dict, rejecting unknown keys."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError("config", f"unknown settings: {sorted(unknown)}")
        if "stream_key" not in data:
            raise ConfigurationError("stream_key", "is required")
        return cls(**data).validate()

    @classmethod
    def from_env(cls) -> ConsumerConfig:
        """Create config from environment variables.

        Raises:
            ConfigurationError: If required variables are missing or malformed
        """
        stream_key = os.environ.get(ENV_PREFIX + "STREAM_KEY")
        if not stream_key:
            raise ConfigurationError(ENV_PREFIX + "STREAM_KEY", "environment variable not set")

        query_str = os.environ.get(ENV_PREFIX + "QUERY", "")
        try:
            query = json.loads(query_str) if query_str else {}
        except json.JSONDecodeError as e:
            raise ConfigurationError(ENV_PREFIX + "QUERY", f"invalid JSON: {e}") from e

        try:
            batch_size = int(os.environ.get(ENV_PREFIX + "BATCH_SIZE", "100"))
            shutdown_timeout = float(os.environ.get(ENV_PREFIX + "SHUTDOWN_TIMEOUT", "30"))
        except ValueError as e:
            raise ConfigurationError("environment", str(e)) from e

        return cls(
            stream_key=stream_key,
            query=query,
            commit_policy=os.environ.get(ENV_PREFIX + "COMMIT_POLICY", "every_event"),
            batch_size=batch_size,
            cursor_backend=os.environ.get(ENV_PREFIX + "CURSOR_BACKEND", "file"),
            cursor_path=os.environ.get(ENV_PREFIX + "CURSOR_PATH"),
            flush_on_complete=_env_bool("FLUSH_ON_COMPLETE", True),
            flush_on_stop=_env_bool("FLUSH_ON_STOP", True),
            skip_replayed=_env_bool("SKIP_REPLAYED", True),
            shutdown_timeout=shutdown_timeout,
        ).validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> ConsumerConfig:
        """Create config from the ``stream_checkpoint`` section of a YAML file.

        Raises:
            ConfigurationError: If the file is unreadable or the section is missing
        """
        config_path = Path(path).expanduser()
        try:
            with open(config_path, encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError("config_path", f"cannot read {config_path}: {e}") from e

        section = document.get("stream_checkpoint")
        if not isinstance(section, dict):
            raise ConfigurationError("stream_checkpoint", f"section missing in {config_path}")

        if section.get("cursor_path"):
            section["cursor_path"] = str(Path(section["cursor_path"]).expanduser())
        return cls.from_dict(section)
