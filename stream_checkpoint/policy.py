"""
Commit-trigger policies.

Committing drains the pending buffer into the sink, persists the position
and marks the transport, which is comparatively expensive. A policy decides,
after each data event has been buffered, whether a commit should happen now
and at which position. Progress events always commit, whatever the policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .events import StreamEvent
from .exceptions import ConfigurationError
from .position import BlockPosition, Position


@dataclass(frozen=True)
class CommitContext:
    """Engine state visible to a policy.

    Attributes:
        pending_count: Buffered items, including the event just appended
        previous_position: Last observed position before the current event
        last_committed_position: Position of the last successful commit
    """

    pending_count: int
    previous_position: Position | None
    last_committed_position: Position | None


@dataclass(frozen=True)
class CommitDecision:
    """Commit the first ``count`` pending items (all when None) at ``position``."""

    position: Position
    count: int | None = None


class CommitPolicy(ABC):
    """Strategy deciding when data events trigger a commit."""

    name: str = "abstract"

    @abstractmethod
    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        """Return a commit decision for a freshly buffered data event, or None."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EveryEventPolicy(CommitPolicy):
    """Commit after every data event. Simplest, highest overhead."""

    name = "every_event"

    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        return CommitDecision(event.position)


class BoundaryPolicy(CommitPolicy):
    """Commit once the last event of a transaction/block unit is buffered."""

    name = "on_boundary"

    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        if event.boundary:
            return CommitDecision(event.position)
        return None


class BlockAdvancePolicy(CommitPolicy):
    """Commit when a data event arrives from a later block.

    Seeing block N+1 proves every event of earlier blocks has been
    delivered, so everything buffered before the new event is committed at
    the last observed position. The new event stays pending.
    """

    name = "on_block_advance"

    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        if not isinstance(event.position, BlockPosition):
            raise ConfigurationError(
                "commit_policy",
                f"{self.name} requires block positions",
                type(event.position).__name__,
            )

        previous = context.previous_position
        if not isinstance(previous, BlockPosition):
            return None
        if event.position.height <= previous.height:
            return None
        if previous == context.last_committed_position and context.pending_count <= 1:
            return None
        return CommitDecision(previous, count=context.pending_count - 1)


class BatchPolicy(CommitPolicy):
    """Commit once ``max_pending`` items are buffered."""

    name = "batch"

    def __init__(self, max_pending: int = 100):
        if max_pending < 1:
            raise ConfigurationError("batch_size", "must be >= 1", str(max_pending))
        self.max_pending = max_pending

    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        if context.pending_count >= self.max_pending:
            return CommitDecision(event.position)
        return None

    def __repr__(self) -> str:
        return f"BatchPolicy(max_pending={self.max_pending})"


class ProgressOnlyPolicy(CommitPolicy):
    """Never commit on data; progress events bound the replay window."""

    name = "progress_only"

    def decide(self, event: StreamEvent, context: CommitContext) -> CommitDecision | None:
        return None


POLICIES: dict[str, type[CommitPolicy]] = {
    EveryEventPolicy.name: EveryEventPolicy,
    BoundaryPolicy.name: BoundaryPolicy,
    BlockAdvancePolicy.name: BlockAdvancePolicy,
    BatchPolicy.name: BatchPolicy,
    ProgressOnlyPolicy.name: ProgressOnlyPolicy,
}


def policy_from_name(name: str, **options: Any) -> CommitPolicy:
    """Build a policy from its configuration name.

    Args:
        name: One of ``POLICIES``
        **options: Constructor options (``max_pending`` for ``batch``)

    Raises:
        ConfigurationError: If the name is unknown
    """
    policy_cls = POLICIES.get(name)
    if policy_cls is None:
        raise ConfigurationError(
            "commit_policy", f"unknown policy, expected one of {sorted(POLICIES)}", name
        )
    if policy_cls is BatchPolicy:
        return BatchPolicy(**options)
    return policy_cls()
