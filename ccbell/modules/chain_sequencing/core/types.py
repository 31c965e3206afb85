"""
Chain Sequencing - Types
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ccbell.errors import CcbellError


class ChainError(CcbellError):
    """Base error for chain run/stop requests."""


class AlreadyRunning(ChainError):
    """A run was requested for a chain that is already running."""


class NotRunning(ChainError):
    """A stop was requested for a chain that is not running."""


class ChainState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class ChainRuntime:
    """Live state of one chain execution, owned by the task running it."""

    chain_id: str
    state: ChainState = ChainState.IDLE
    step_index: int = 0
    remaining_repeats: int = 0


@dataclass
class StepFailure:
    step_index: int
    sound_ref: str
    error: str
    required: bool


@dataclass
class ChainRunResult:
    """Outcome of one run(), reported back to its caller"""

    chain_id: str
    state: ChainState = ChainState.RUNNING
    passes: int = 0
    steps_played: int = 0
    steps_skipped: int = 0
    failures: List[StepFailure] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == ChainState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "state": self.state.value,
            "passes": self.passes,
            "steps_played": self.steps_played,
            "steps_skipped": self.steps_skipped,
            "failures": [vars(f).copy() for f in self.failures],
            "reason": self.reason,
        }
