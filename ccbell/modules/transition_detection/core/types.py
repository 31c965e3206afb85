"""
Transition Detection - Types

Snapshot values form a closed tagged set (Numeric / Boolean / Categorical).
Threshold specs come from configuration and are read-only here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Union


@dataclass(frozen=True)
class Numeric:
    value: float


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Categorical:
    value: str


SnapshotValue = Union[Numeric, Boolean, Categorical]


@dataclass(frozen=True)
class Snapshot:
    """A timestamped observation of one monitored signal."""

    key: str
    value: SnapshotValue
    timestamp: float


class TransitionTier(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    CATEGORICAL_CHANGE = "categorical-change"
    LEAK = "leak"


class TransitionDirection(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    CHANGED = "changed"


@dataclass(frozen=True)
class TransitionEvent:
    """An alert-worthy change detected for one key."""

    key: str
    tier: TransitionTier
    direction: TransitionDirection
    timestamp: float
    value: Optional[Union[float, bool, str]] = None
    previous: Optional[Union[float, bool, str]] = None

    def to_dict(self) -> dict:
        """Plain dict for EventBus payloads"""
        return {
            "key": self.key,
            "tier": self.tier.value,
            "direction": self.direction.value,
            "timestamp": self.timestamp,
            "value": self.value,
            "previous": self.previous,
        }


@dataclass(frozen=True)
class NumericThresholds:
    """Warning/critical thresholds with a shared hysteresis margin.

    Either tier may be omitted. leak_window enables trend detection over the
    last N numeric samples.
    """

    warning: Optional[float] = None
    critical: Optional[float] = None
    hysteresis_margin: float = 0.0
    leak_window: Optional[int] = None

    def is_valid(self) -> bool:
        has_tier = self.warning is not None or self.critical is not None
        has_leak = self.leak_window is not None
        if not has_tier and not has_leak:
            return False
        if self.hysteresis_margin < 0:
            return False
        if self.warning is not None and self.critical is not None and self.critical < self.warning:
            return False
        if has_leak and self.leak_window < 2:
            return False
        return True


@dataclass(frozen=True)
class CategoricalWatch:
    """Watched categorical/boolean values. Empty means every value is watched."""

    values: FrozenSet[Union[str, bool]] = field(default_factory=frozenset)

    def is_valid(self) -> bool:
        return True

    def watches(self, value: Union[str, bool]) -> bool:
        return not self.values or value in self.values


ThresholdSpec = Union[NumericThresholds, CategoricalWatch]
