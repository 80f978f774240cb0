"""
Checkpoint engine for reconnect-safe stream consumption.

Orchestrates one subscription:
- Buffers data events until the commit policy fires
- Commits: sink apply + flush -> cursor save -> transport mark
- Commits unconditionally on progress markers
- Drops uncommitted events when the transport reconnects, since
  redelivery from the last mark is inclusive
- Drains gracefully on stop, with a deadline

The engine is the only writer of its checkpoint state and the only caller
of the adapter's ``mark``. Events are handled one at a time; a commit
always completes before the next event is looked at.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .adapter import MessageNormalizer, StreamAdapter, Transport
from .buffer import PendingBuffer
from .config import ConsumerConfig
from .cursors import CursorStore, create_cursor_store
from .events import EventKind, StreamEvent
from .exceptions import (
    ConfigurationError,
    CursorPersistError,
    EngineNotRunningError,
    SinkWriteError,
    TransportError,
)
from .logging_utils import StreamLoggerAdapter
from .policy import CommitContext, CommitPolicy
from .position import Position, is_before
from .sinks import Sink

logger = logging.getLogger(__name__)


def _require_position(event: StreamEvent) -> Position:
    if event.position is None:
        raise ConfigurationError(
            "position", f"{event.kind.value} event carries no position; check the normalizer"
        )
    return event.position


class EngineState(Enum):
    """Lifecycle state of the engine."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class CheckpointState:
    """Mutable checkpoint state, owned by exactly one engine."""

    last_committed_position: Position | None = None
    last_observed_position: Position | None = None
    pending: PendingBuffer = field(default_factory=PendingBuffer)
    commits: int = 0
    committed_events: int = 0
    reconnects: int = 0
    skipped_replays: int = 0
    errors: int = 0


@dataclass(frozen=True)
class CheckpointSnapshot:
    """Point-in-time copy of an engine's checkpoint state."""

    stream_key: str
    state: EngineState
    last_committed_position: Position | None
    last_observed_position: Position | None
    pending: int
    commits: int
    committed_events: int
    reconnects: int
    skipped_replays: int
    errors: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "stream_key": self.stream_key,
            "state": self.state.value,
            "last_committed_position": (
                self.last_committed_position.to_dict() if self.last_committed_position else None
            ),
            "last_observed_position": (
                self.last_observed_position.to_dict() if self.last_observed_position else None
            ),
            "pending": self.pending,
            "commits": self.commits,
            "committed_events": self.committed_events,
            "reconnects": self.reconnects,
            "skipped_replays": self.skipped_replays,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a successful commit."""

    position: Position
    applied: int
    duration_ms: int


class CheckpointEngine:
    """Consumes one subscription with checkpointed, effectively-once commits.

    ``run()`` feeds adapter events through ``handle()``, which serializes
    them and dispatches on the event kind to ``on_data``, ``on_progress``,
    ``on_reconnect``, ``on_error`` and ``on_complete``. Those handlers and
    ``commit`` assume they are called under the engine lock and should not
    be called directly while ``run()`` is active.
    """

    def __init__(
        self,
        adapter: StreamAdapter,
        sink: Sink,
        cursor_store: CursorStore,
        config: ConsumerConfig,
        policy: CommitPolicy | None = None,
    ):
        """Initialize the engine.

        Args:
            adapter: Stream adapter over the transport subscription
            sink: Destination for committed payloads (idempotent apply)
            cursor_store: Durable store for the stream position
            config: Consumer configuration
            policy: Commit policy (defaults to ``config.build_policy()``)
        """
        self.adapter = adapter
        self.sink = sink
        self.cursor_store = cursor_store
        self.config = config
        self.policy = policy or config.build_policy()

        self._state = EngineState.IDLE
        self._checkpoint = CheckpointState()
        self._lock = asyncio.Lock()
        self._failed_commit: tuple[Position, int | None] | None = None
        self._released = False
        self._handlers = {
            EventKind.DATA: self._dispatch_data,
            EventKind.PROGRESS: self._dispatch_progress,
            EventKind.RECONNECT: self._dispatch_reconnect,
            EventKind.ERROR: self._dispatch_error,
            EventKind.COMPLETE: self._dispatch_complete,
        }
        self.log = StreamLoggerAdapter(logger, {"stream_key": config.stream_key})

    @property
    def stream_key(self) -> str:
        return self.config.stream_key

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def last_committed_position(self) -> Position | None:
        return self._checkpoint.last_committed_position

    @property
    def pending_count(self) -> int:
        return len(self._checkpoint.pending)

    def snapshot(self) -> CheckpointSnapshot:
        cp = self._checkpoint
        return CheckpointSnapshot(
            stream_key=self.stream_key,
            state=self._state,
            last_committed_position=cp.last_committed_position,
            last_observed_position=cp.last_observed_position,
            pending=len(cp.pending),
            commits=cp.commits,
            committed_events=cp.committed_events,
            reconnects=cp.reconnects,
            skipped_replays=cp.skipped_replays,
            errors=cp.errors,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def load_position(self) -> Position | None:
        """Read the last persisted position for this stream."""
        try:
            return await self.cursor_store.load(self.stream_key)
        except CursorPersistError:
            raise
        except Exception as e:
            raise CursorPersistError("load", self.stream_key, e) from e

    async def start(self, initial_position: Position | None = None) -> None:
        """Seed checkpoint state and open the subscription.

        The persisted position wins over ``initial_position``; with neither,
        the transport decides where to start (beginning or tip).
        """
        if self._state == EngineState.RUNNING:
            return
        if self._state != EngineState.IDLE:
            raise EngineNotRunningError(self.stream_key, self._state.value)

        stored = await self.load_position()
        start_position = stored if stored is not None else initial_position
        self._checkpoint = CheckpointState(
            last_committed_position=stored,
            last_observed_position=stored,
        )

        try:
            await self.sink.open()
        except SinkWriteError:
            raise
        except Exception as e:
            raise SinkWriteError(self.sink.name, cause=e) from e

        await self.adapter.open(start_position)
        self._state = EngineState.RUNNING

        if start_position is None:
            self.log.info("Engine started without a stored position")
        else:
            origin = "stored" if stored is not None else "initial"
            self.log.info(f"Engine started from {origin} position {start_position.describe()}")

    async def run(self) -> CheckpointSnapshot:
        """Consume events until completion, stop, or a fatal error.

        Raises:
            TransportError: On a terminal transport error
            SinkWriteError: When a commit could not be applied; the engine
                keeps running and ``retry_commit()`` / ``run()`` may be called
            CursorPersistError: When a position could not be persisted
        """
        if self._state == EngineState.IDLE:
            await self.start()

        async for event in self.adapter.events():
            if self._state != EngineState.RUNNING:
                break
            await self.handle(event)
            if self._state != EngineState.RUNNING:
                break

        return self.snapshot()

    async def handle(self, event: StreamEvent) -> None:
        """Process one event under the engine lock."""
        async with self._lock:
            if self._state in (EngineState.STOPPING, EngineState.STOPPED):
                self.log.debug(f"Dropping {event.kind.value} event received during shutdown")
                return
            if self._state != EngineState.RUNNING:
                raise EngineNotRunningError(self.stream_key, self._state.value)

            try:
                await self._handlers[event.kind](event)
            except ConfigurationError:
                self._fail()
                raise

    async def retry_commit(self) -> CommitResult | None:
        """Redo the last commit that failed on the sink, if any."""
        async with self._lock:
            if self._failed_commit is None:
                return None
            if self._state != EngineState.RUNNING:
                raise EngineNotRunningError(self.stream_key, self._state.value)
            position, count = self._failed_commit
            self.log.info(f"Retrying failed commit at {position.describe()}")
            return await self.commit(position, count)

    async def stop(self, timeout: float | None = None) -> CheckpointSnapshot:
        """Gracefully stop: drain the in-flight commit, flush, release the transport.

        Args:
            timeout: Deadline in seconds (defaults to ``config.shutdown_timeout``).
                When it expires, pending events are discarded; they are
                redelivered on the next start.
        """
        if self._state == EngineState.STOPPED:
            return self.snapshot()
        if self._state == EngineState.IDLE:
            self._state = EngineState.STOPPED
            return self.snapshot()

        timeout = self.config.shutdown_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        was_running = self._state == EngineState.RUNNING
        if was_running:
            self._state = EngineState.STOPPING

        acquired = False
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=max(0.0, deadline - loop.time()))
            acquired = True
        except TimeoutError:
            self.log.warning("In-flight commit did not finish before the shutdown deadline")

        try:
            if acquired and was_running:
                await self._final_flush(deadline - loop.time())
            discarded = self._checkpoint.pending.clear()
            if discarded:
                self.log.warning(
                    f"Discarding {discarded} uncommitted event(s); they will be redelivered on restart"
                )
        finally:
            if acquired:
                self._lock.release()
            await self._release()
            if self._state != EngineState.FAILED:
                self._state = EngineState.STOPPED

        self.log.info(f"Engine stopped ({self._checkpoint.commits} commit(s))")
        return self.snapshot()

    async def _final_flush(self, remaining: float) -> None:
        cp = self._checkpoint
        if not self.config.flush_on_stop or not cp.pending or cp.last_observed_position is None:
            return
        try:
            await asyncio.wait_for(self.commit(cp.last_observed_position), timeout=max(0.0, remaining))
        except TimeoutError:
            self.log.warning("Final commit did not finish before the shutdown deadline")
        except (SinkWriteError, CursorPersistError) as e:
            self.log.error(f"Final commit failed: {e}")

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True

        try:
            await self.adapter.close()
        except Exception as e:
            self.log.warning(f"Error closing subscription: {e}")
        try:
            await self.sink.close()
        except Exception as e:
            self.log.warning(f"Error closing sink {self.sink.name}: {e}")

    def _fail(self) -> None:
        self._state = EngineState.FAILED

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _dispatch_data(self, event: StreamEvent) -> None:
        await self.on_data(event)

    async def _dispatch_progress(self, event: StreamEvent) -> None:
        await self.on_progress(_require_position(event))

    async def _dispatch_reconnect(self, event: StreamEvent) -> None:
        await self.on_reconnect()

    async def _dispatch_error(self, event: StreamEvent) -> None:
        await self.on_error(event.details, event.terminal)

    async def _dispatch_complete(self, event: StreamEvent) -> None:
        await self.on_complete()

    async def on_data(self, event: StreamEvent) -> None:
        """Buffer a data event and commit if the policy says so."""
        cp = self._checkpoint
        position = _require_position(event)

        if (
            self.config.skip_replayed
            and cp.last_committed_position is not None
            and is_before(position, cp.last_committed_position)
        ):
            cp.skipped_replays += 1
            self.log.debug(f"Skipping replayed event @ {position.describe()}, already committed")
            return

        previous = cp.last_observed_position
        cp.pending.append(event.payload, position)
        cp.last_observed_position = position
        self.log.debug(f"Pending event @ {position.describe()} ({len(cp.pending)} pending)")

        decision = self.policy.decide(
            event,
            CommitContext(
                pending_count=len(cp.pending),
                previous_position=previous,
                last_committed_position=cp.last_committed_position,
            ),
        )
        if decision is not None:
            await self.commit(decision.position, decision.count)

    async def on_progress(self, position: Position) -> None:
        """Commit at ``position``, even with nothing pending."""
        self.log.debug(f"Progress marker @ {position.describe()}")
        self._checkpoint.last_observed_position = position
        await self.commit(position)

    async def on_reconnect(self) -> None:
        """Drop everything uncommitted; the transport redelivers it."""
        cp = self._checkpoint
        dropped = cp.pending.clear()
        cp.reconnects += 1
        cp.last_observed_position = cp.last_committed_position
        self._failed_commit = None
        self.log.info(
            f"Stream reconnected (#{cp.reconnects}), flushed {dropped} pending event(s)",
            extra={"reconnects": cp.reconnects, "dropped": dropped},
        )

    async def on_error(self, details: Any, terminal: bool) -> None:
        """Absorb non-terminal transport errors; fail on terminal ones."""
        self._checkpoint.errors += 1
        if not terminal:
            self.log.warning(
                f"Transport error, waiting for the transport to reconnect: {details}",
                extra={"terminal": False},
            )
            return

        self.log.error(f"Terminal transport error: {details}", extra={"terminal": True})
        self._fail()
        raise TransportError("Terminal transport error", terminal=True, errors=details)

    async def on_complete(self) -> None:
        """Final commit (when configured), then stop."""
        cp = self._checkpoint
        self.log.info("Stream completed, no more events")
        if self.config.flush_on_complete and cp.pending and cp.last_observed_position is not None:
            await self.commit(cp.last_observed_position)

        await self._release()
        self._state = EngineState.STOPPED

    async def commit(self, position: Position, count: int | None = None) -> CommitResult:
        """Commit the first ``count`` pending events (all when None) at ``position``.

        Steps: apply to sink in arrival order and flush, persist the
        position, mark the transport, advance ``last_committed_position``,
        drop the committed events from the buffer. Nothing advances if the
        sink fails.

        Raises:
            SinkWriteError: The sink rejected a payload; retry with ``retry_commit()``
            CursorPersistError: The position could not be persisted; engine FAILED
        """
        cp = self._checkpoint
        items = cp.pending.snapshot(count)
        started = time.monotonic()

        try:
            for item in items:
                await self.sink.apply(item.payload, item.position)
            await self.sink.flush()
        except Exception as e:
            self._failed_commit = (position, count)
            cp.errors += 1
            self.log.error(f"Commit at {position.describe()} failed on sink {self.sink.name}: {e}")
            if isinstance(e, SinkWriteError):
                raise
            raise SinkWriteError(self.sink.name, position.describe(), e) from e

        if cp.last_committed_position is not None and is_before(position, cp.last_committed_position):
            # Replayed commit behind the stored cursor; the sink already has these
            self.log.debug(f"Keeping cursor at {cp.last_committed_position.describe()}")
        else:
            await self._persist(position)
            await self._mark(position)
            cp.last_committed_position = position

        cp.pending.discard(len(items))
        cp.commits += 1
        cp.committed_events += len(items)
        self._failed_commit = None

        duration_ms = int((time.monotonic() - started) * 1000)
        self.log.info(
            f"Committed {len(items)} event(s) up to {position.describe()}",
            extra={"position": position, "applied": len(items), "duration_ms": duration_ms},
        )
        return CommitResult(position=position, applied=len(items), duration_ms=duration_ms)

    async def _persist(self, position: Position) -> None:
        try:
            await self.cursor_store.save(self.stream_key, position)
        except Exception as e:
            self._fail()
            self._checkpoint.errors += 1
            self.log.error(f"Unable to persist position {position.describe()}: {e}")
            if isinstance(e, CursorPersistError):
                raise
            raise CursorPersistError("save", self.stream_key, e) from e

    async def _mark(self, position: Position) -> None:
        try:
            await self.adapter.mark(position)
        except ConfigurationError:
            self._fail()
            raise
        except Exception as e:
            # Position is persisted; the transport replays from its older mark
            self.log.warning(f"Unable to mark stream at {position.describe()}: {e}")


async def create_engine(
    config: ConsumerConfig,
    transport: Transport,
    normalizer: MessageNormalizer,
    sink: Sink,
    cursor_store: CursorStore | None = None,
) -> CheckpointEngine:
    """Create an engine wired to a transport.

    Args:
        config: Consumer configuration (validated here)
        transport: Transport to subscribe with
        normalizer: Normalizer for the transport's messages
        sink: Destination for committed payloads
        cursor_store: Cursor store (defaults to the configured backend)

    Returns:
        An engine ready for ``start()`` / ``run()``
    """
    config.validate()
    if cursor_store is None:
        cursor_store = await create_cursor_store(config)

    adapter = StreamAdapter(transport, config.query, normalizer)
    return CheckpointEngine(adapter, sink, cursor_store, config)
