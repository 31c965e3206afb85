"""
Cooldown Gate

Per-key (and per-tier) re-alert limiter. The check and the update happen in
one critical section, so concurrent callers for the same key see a
linearizable sequence of decisions.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_EntryKey = Tuple[str, Optional[Hashable]]


@dataclass
class CooldownEntry:
    key: str
    tier: Optional[Hashable]
    last_fired_at: float


class CooldownGate:
    """Interval-agnostic cooldown registry.

    The minimum interval is supplied per call (configuration decides it per
    severity), so the same gate serves every tier.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[_EntryKey, CooldownEntry] = {}
        self._lock = threading.Lock()
        self._allowed = 0
        self._suppressed = 0

    def allow(
        self,
        key: str,
        min_interval: float,
        tier: Optional[Hashable] = None,
        now: Optional[float] = None,
    ) -> bool:
        """True (and record now) if min_interval has passed since the last allowed call."""
        now = self._clock() if now is None else now
        entry_key = (key, tier)
        with self._lock:
            entry = self._entries.get(entry_key)
            if entry is not None and now - entry.last_fired_at < min_interval:
                self._suppressed += 1
                return False
            if entry is None:
                self._entries[entry_key] = CooldownEntry(key=key, tier=tier, last_fired_at=now)
            else:
                entry.last_fired_at = max(entry.last_fired_at, now)
            self._allowed += 1
            return True

    def last_fired(self, key: str, tier: Optional[Hashable] = None) -> Optional[float]:
        with self._lock:
            entry = self._entries.get((key, tier))
            return entry.last_fired_at if entry else None

    def reset(self, key: Optional[str] = None) -> None:
        """Clear one key (every tier) or the whole registry."""
        with self._lock:
            if key is None:
                self._entries.clear()
                return
            for entry_key in [k for k in self._entries if k[0] == key]:
                del self._entries[entry_key]

    def evict_idle(self, max_idle_sec: float, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        with self._lock:
            stale = [k for k, e in self._entries.items() if now - e.last_fired_at > max_idle_sec]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(f"[COOLDOWN] evicted {len(stale)} idle entr(ies)")
        return sorted({k[0] for k in stale})

    def get_status(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "allowed": self._allowed,
                "suppressed": self._suppressed,
            }
