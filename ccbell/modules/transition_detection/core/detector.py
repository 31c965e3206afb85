"""
Transition Detector

Classifies each new Snapshot against the retained per-key history:
- numeric tiers (warning / critical) with hysteresis, independently armed
- categorical / boolean value changes
- leak (monotonic growth) detection over a ring buffer of numeric samples

Thread-safe: the key registry has its own lock and each key carries a lock
for its update. Nothing here performs I/O.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Union

from .types import (
    Boolean,
    Categorical,
    CategoricalWatch,
    Numeric,
    NumericThresholds,
    Snapshot,
    ThresholdSpec,
    TransitionDirection,
    TransitionEvent,
    TransitionTier,
)

logger = logging.getLogger(__name__)

SpecLookup = Callable[[str], Optional[ThresholdSpec]]


@dataclass
class _KeyState:
    spec: ThresholdSpec
    lock: threading.Lock = field(default_factory=threading.Lock)
    last_value: Optional[Union[float, bool, str]] = None
    has_value: bool = False
    warning_armed: bool = False
    critical_armed: bool = False
    window: Optional[Deque[float]] = None
    leak_fired: bool = False
    last_seen: float = 0.0


class TransitionDetector:
    """Edge-triggered transition detection with hysteresis.

    Specs are taken from the static registry (set_threshold) first and then
    from the optional spec_lookup callable.
    """

    def __init__(self, spec_lookup: Optional[SpecLookup] = None) -> None:
        self._spec_lookup = spec_lookup
        self._specs: Dict[str, ThresholdSpec] = {}
        self._states: Dict[str, _KeyState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Threshold registry
    # ------------------------------------------------------------------

    def set_threshold(self, key: str, spec: ThresholdSpec) -> None:
        with self._lock:
            self._specs[key] = spec
            self._states.pop(key, None)

    def remove_threshold(self, key: str) -> None:
        with self._lock:
            self._specs.pop(key, None)
            self._states.pop(key, None)

    def _spec_for(self, key: str) -> Optional[ThresholdSpec]:
        spec = self._specs.get(key)
        if spec is None and self._spec_lookup is not None:
            spec = self._spec_lookup(key)
        return spec

    def _state_for(self, key: str, spec: ThresholdSpec) -> _KeyState:
        with self._lock:
            state = self._states.get(key)
            # A changed spec starts a fresh history for the key
            if state is None or state.spec != spec:
                state = _KeyState(spec=spec)
                if isinstance(spec, NumericThresholds) and spec.leak_window:
                    state.window = deque(maxlen=spec.leak_window)
                self._states[key] = state
            return state

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, key: str, snapshot: Snapshot) -> List[TransitionEvent]:
        """Return the transitions caused by this snapshot (0, 1 or 2 events)."""
        spec = self._spec_for(key)
        if spec is None or not spec.is_valid():
            logger.debug(f"[DETECTOR] no usable threshold spec for key={key}, skipping")
            return []

        value = snapshot.value
        if isinstance(spec, NumericThresholds):
            if not isinstance(value, Numeric):
                logger.debug(f"[DETECTOR] key={key} expects a numeric value, got {type(value).__name__}")
                return []
        elif not isinstance(value, (Boolean, Categorical)):
            logger.debug(f"[DETECTOR] key={key} expects a categorical value, got {type(value).__name__}")
            return []

        state = self._state_for(key, spec)
        with state.lock:
            state.last_seen = snapshot.timestamp
            if isinstance(spec, NumericThresholds):
                events = self._evaluate_numeric(key, spec, state, float(value.value), snapshot.timestamp)
            else:
                events = self._evaluate_categorical(key, spec, state, value.value, snapshot.timestamp)

        for event in events:
            logger.debug(f"[DETECTOR] transition key={key} tier={event.tier.value} value={event.value}")
        return events

    def _evaluate_numeric(
        self,
        key: str,
        spec: NumericThresholds,
        state: _KeyState,
        current: float,
        timestamp: float,
    ) -> List[TransitionEvent]:
        events: List[TransitionEvent] = []
        previous = state.last_value if state.has_value else None
        margin = spec.hysteresis_margin

        critical_fired = False
        if spec.critical is not None:
            if state.critical_armed:
                if current < spec.critical - margin:
                    state.critical_armed = False
            elif current >= spec.critical:
                state.critical_armed = True
                critical_fired = True
                events.append(self._event(key, TransitionTier.CRITICAL, TransitionDirection.RISING,
                                          timestamp, current, previous))

        if spec.warning is not None:
            if state.warning_armed:
                if current < spec.warning - margin:
                    state.warning_armed = False
            elif current >= spec.warning:
                state.warning_armed = True
                # One real-world crossing of both tiers alerts once, as critical
                if not critical_fired:
                    events.append(self._event(key, TransitionTier.WARNING, TransitionDirection.RISING,
                                              timestamp, current, previous))

        if state.window is not None:
            leak = self._track_leak(key, state, current, timestamp, previous)
            if leak is not None:
                events.append(leak)

        state.last_value = current
        state.has_value = True
        return events

    def _track_leak(
        self,
        key: str,
        state: _KeyState,
        current: float,
        timestamp: float,
        previous: Optional[float],
    ) -> Optional[TransitionEvent]:
        window = state.window
        if window and current <= window[-1]:
            state.leak_fired = False
        window.append(current)

        if state.leak_fired or len(window) < window.maxlen:
            return None
        samples = list(window)
        if all(a < b for a, b in zip(samples, samples[1:])):
            state.leak_fired = True
            return self._event(key, TransitionTier.LEAK, TransitionDirection.RISING,
                               timestamp, current, previous)
        return None

    def _evaluate_categorical(
        self,
        key: str,
        spec: CategoricalWatch,
        state: _KeyState,
        current: Union[str, bool],
        timestamp: float,
    ) -> List[TransitionEvent]:
        events: List[TransitionEvent] = []
        if state.has_value and current != state.last_value and spec.watches(current):
            events.append(self._event(key, TransitionTier.CATEGORICAL_CHANGE, TransitionDirection.CHANGED,
                                      timestamp, current, state.last_value))
        state.last_value = current
        state.has_value = True
        return events

    @staticmethod
    def _event(key, tier, direction, timestamp, value, previous) -> TransitionEvent:
        return TransitionEvent(
            key=key,
            tier=tier,
            direction=direction,
            timestamp=timestamp,
            value=value,
            previous=previous,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, key: Optional[str] = None) -> None:
        """Forget history for one key, or for every key."""
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)

    def evict_idle(self, max_idle_sec: float, now: Optional[float] = None) -> List[str]:
        """Drop keys whose last snapshot is older than max_idle_sec."""
        now = time.time() if now is None else now
        with self._lock:
            stale = [k for k, s in self._states.items() if now - s.last_seen > max_idle_sec]
            for k in stale:
                del self._states[k]
        if stale:
            logger.info(f"[DETECTOR] evicted {len(stale)} idle key(s)")
        return stale

    def tracked_keys(self) -> List[str]:
        with self._lock:
            return list(self._states.keys())

    def is_armed(self, key: str, tier: TransitionTier) -> bool:
        with self._lock:
            state = self._states.get(key)
        if state is None:
            return False
        with state.lock:
            if tier == TransitionTier.WARNING:
                return state.warning_armed
            if tier == TransitionTier.CRITICAL:
                return state.critical_armed
            if tier == TransitionTier.LEAK:
                return state.leak_fired
        return False
