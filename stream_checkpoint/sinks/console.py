"""Sink that only reports committed payloads through logging."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..position import Position
from .base import Sink

logger = logging.getLogger(__name__)


class ConsoleSink(Sink):
    """Logs each committed payload at INFO.

    Useful for demos and dry runs. A replayed payload is logged again, which
    leaves no state behind, so re-application is harmless.
    """

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def apply(self, payload: Any, position: Position) -> None:
        logger.log(
            self.level,
            f"Commit {json.dumps(payload, default=str)} @ {position.describe()}",
        )
