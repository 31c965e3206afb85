"""
Transition Detection Module - edge-triggered alert classification with hysteresis.
"""

from .core.detector import TransitionDetector
from .core.types import (
    Boolean,
    Categorical,
    CategoricalWatch,
    Numeric,
    NumericThresholds,
    Snapshot,
    SnapshotValue,
    ThresholdSpec,
    TransitionDirection,
    TransitionEvent,
    TransitionTier,
)

__all__ = [
    "TransitionDetector",
    "Boolean",
    "Categorical",
    "CategoricalWatch",
    "Numeric",
    "NumericThresholds",
    "Snapshot",
    "SnapshotValue",
    "ThresholdSpec",
    "TransitionDirection",
    "TransitionEvent",
    "TransitionTier",
]
