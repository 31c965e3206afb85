"""
Chain Sequencing Module - ordered, optionally looping sound sequences.
"""

from .core.sequencer import ChainSequencer
from .core.types import (
    AlreadyRunning,
    ChainError,
    ChainRunResult,
    ChainRuntime,
    ChainState,
    NotRunning,
    StepFailure,
)

__all__ = [
    "ChainSequencer",
    "AlreadyRunning",
    "ChainError",
    "ChainRunResult",
    "ChainRuntime",
    "ChainState",
    "NotRunning",
    "StepFailure",
]
