"""
Playback Module - Types

Priorities, outcomes and the per-submission handle returned by the dispatcher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from ccbell.errors import CcbellError


class PlaybackError(CcbellError):
    """Raised by an AudioOutput when a sound could not be played."""


class PlayPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    CRITICAL = 2


class PlayOutcome(str, Enum):
    PLAYED = "played"
    FAILED = "failed"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PlayResult:
    outcome: PlayOutcome
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == PlayOutcome.PLAYED

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.outcome.value, "error": self.error}


class PlayHandle:
    """Tracks one submission; await it (or wait()) for the PlayResult."""

    def __init__(
        self,
        request_id: int,
        sound: str,
        volume: float,
        priority: PlayPriority,
        future: "asyncio.Future[PlayResult]",
    ) -> None:
        self.request_id = request_id
        self.sound = sound
        self.volume = volume
        self.priority = priority
        self._future = future

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Optional[PlayResult]:
        """The PlayResult if finished, else None."""
        return self._future.result() if self._future.done() else None

    async def wait(self) -> PlayResult:
        # shield: a cancelled waiter must not cancel the submission itself
        return await asyncio.shield(self._future)

    def __await__(self):
        return self.wait().__await__()

    def _resolve(self, result: PlayResult) -> None:
        if not self._future.done():
            self._future.set_result(result)

    def __repr__(self) -> str:
        return (
            f"PlayHandle(id={self.request_id}, sound={self.sound!r}, "
            f"priority={self.priority.name}, done={self.done()})"
        )
