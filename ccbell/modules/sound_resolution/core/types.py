"""
Sound Resolution - Types

Pools, chains and playback units as loaded from configuration. Definitions
are read-only to the core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time as dtime
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from ccbell.errors import CcbellError


class SoundResolutionError(CcbellError):
    """Reference could not be turned into something playable."""


class NotFound(SoundResolutionError):
    """Referenced sound, pool or chain is absent from configuration."""


class InvalidReference(SoundResolutionError):
    """Reference is malformed or used where its kind is not allowed."""


class SelectionMode(str, Enum):
    UNIFORM = "uniform"
    WEIGHTED = "weighted"
    SEQUENTIAL = "sequential"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class TimeWindow:
    """Wall-clock window; start > end wraps past midnight."""

    start: dtime
    end: dtime

    def contains(self, moment: dtime) -> bool:
        if self.start <= self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end


@dataclass(frozen=True)
class PoolEntry:
    sound_ref: str
    weight: float = 1.0
    time_window: Optional[TimeWindow] = None


@dataclass(frozen=True)
class SoundPool:
    pool_id: str
    entries: Tuple[PoolEntry, ...]
    mode: SelectionMode = SelectionMode.UNIFORM
    remember_last: bool = False


StepCondition = Union[str, Callable[[], bool]]


@dataclass(frozen=True)
class ChainStep:
    sound_ref: str
    delay_before_ms: int = 0
    post_duration_ms: int = 0
    volume: float = 1.0
    required: bool = False
    condition: Optional[StepCondition] = None


@dataclass(frozen=True)
class ChainDefinition:
    chain_id: str
    steps: Tuple[ChainStep, ...]
    loop: bool = False
    repeat_count: int = 0


@dataclass(frozen=True)
class DirectUnit:
    sound: str
    volume: float = 1.0


@dataclass(frozen=True)
class PoolUnit:
    pool_id: str
    volume: float = 1.0


@dataclass(frozen=True)
class ChainUnit:
    chain_id: str
    chain: ChainDefinition = field(compare=False)


PlaybackUnit = Union[DirectUnit, PoolUnit, ChainUnit]
