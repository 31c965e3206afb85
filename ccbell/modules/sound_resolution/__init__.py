"""
Sound Resolution Module - event references to direct sounds, pool picks and chains.
"""

from .core.resolver import SoundResolver, parse_ref
from .core.types import (
    ChainDefinition,
    ChainStep,
    ChainUnit,
    DirectUnit,
    InvalidReference,
    NotFound,
    PlaybackUnit,
    PoolEntry,
    PoolUnit,
    SelectionMode,
    SoundPool,
    SoundResolutionError,
    TimeWindow,
)

__all__ = [
    "SoundResolver",
    "parse_ref",
    "ChainDefinition",
    "ChainStep",
    "ChainUnit",
    "DirectUnit",
    "InvalidReference",
    "NotFound",
    "PlaybackUnit",
    "PoolEntry",
    "PoolUnit",
    "SelectionMode",
    "SoundPool",
    "SoundResolutionError",
    "TimeWindow",
]
