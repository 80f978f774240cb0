"""Replay a recorded stream through a checkpointed consumer.

Reads transport messages (one JSON object per line), replays them with
optional simulated disconnects, and commits the payloads to a JSONL file.
Running it twice against the same cursor directory resumes from the stored
position instead of starting over.

Usage:
    python scripts/replay_stream.py recording.jsonl --output events.jsonl
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from stream_checkpoint import (
    BlockStreamNormalizer,
    ConsumerConfig,
    FileCursorStore,
    GraphQLCursorNormalizer,
    JsonlFileSink,
    ReplayTransport,
    StreamCheckpointError,
    configure_structured_logging,
    create_engine,
)
from stream_checkpoint.policy import POLICIES

logger = logging.getLogger(__name__)


def load_messages(path: Path) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


async def replay(args: argparse.Namespace) -> int:
    messages = load_messages(args.recording)
    if args.normalizer == "graphql":
        normalizer = GraphQLCursorNormalizer()
    else:
        normalizer = BlockStreamNormalizer()

    config = ConsumerConfig(
        stream_key=args.stream_key or args.recording.stem,
        query={"recording": str(args.recording)},
        commit_policy=args.policy,
        batch_size=args.batch_size,
        cursor_backend="file",
        cursor_path=str(args.cursor_dir),
    )
    transport = ReplayTransport(messages, disconnect_after=args.disconnect_after)
    engine = await create_engine(
        config,
        transport,
        normalizer,
        JsonlFileSink(args.output),
        cursor_store=FileCursorStore(args.cursor_dir),
    )

    try:
        snapshot = await engine.run()
    except StreamCheckpointError as e:
        logger.error(f"Replay aborted: {e}")
        await engine.stop()
        return 1

    if engine.state.value != "stopped":
        snapshot = await engine.stop()

    print(json.dumps(snapshot.to_dict(), indent=2))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay a recorded stream through a checkpointed consumer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Block stream, commit when the block height advances
    python scripts/replay_stream.py blocks.jsonl --output events.jsonl --policy on_block_advance

    # GraphQL cursor stream with two simulated disconnects
    python scripts/replay_stream.py search.jsonl --normalizer graphql \\
        --output events.jsonl --disconnect-after 3 7
        """,
    )
    parser.add_argument("recording", type=Path, help="JSONL file of transport messages")
    parser.add_argument("--output", type=Path, required=True, help="JSONL sink file")
    parser.add_argument("--normalizer", choices=["block", "graphql"], default="block")
    parser.add_argument("--policy", choices=sorted(POLICIES), default="every_event")
    parser.add_argument("--batch-size", type=int, default=100)
    parser.add_argument("--stream-key", help="Cursor key (default: recording file name)")
    parser.add_argument(
        "--cursor-dir", type=Path, default=Path(".cursors"), help="Cursor store directory"
    )
    parser.add_argument(
        "--disconnect-after", type=int, nargs="*", default=[], help="Message indices to drop after"
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-event traffic")

    args = parser.parse_args()
    configure_structured_logging(logging.DEBUG if args.verbose else logging.INFO, logger_name=None)
    sys.exit(asyncio.run(replay(args)))


if __name__ == "__main__":
    main()
