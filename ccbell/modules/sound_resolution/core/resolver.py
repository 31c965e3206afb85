"""
Sound Resolver

Maps an event reference to a PlaybackUnit and draws sounds from pools.

Reference forms:
    sound:<id>      catalog lookup (a bare string means the same)
    file:<path>     direct path
    bundled:<name>  <bundled_dir>/<name>.aiff
    pool:<id>       sound pool
    chain:<id>      chain definition
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from .types import (
    ChainDefinition,
    ChainUnit,
    DirectUnit,
    InvalidReference,
    NotFound,
    PlaybackUnit,
    PoolEntry,
    PoolUnit,
    SelectionMode,
    SoundPool,
)

logger = logging.getLogger(__name__)

SCHEMES = ("sound", "file", "bundled", "pool", "chain")
BUNDLED_EXTENSION = ".aiff"
MAX_POOL_NESTING = 8


def parse_ref(ref: str) -> Tuple[str, str]:
    """Split a reference into (scheme, name)."""
    if not isinstance(ref, str) or not ref.strip():
        raise InvalidReference(f"empty sound reference: {ref!r}")
    ref = ref.strip()
    scheme, sep, name = ref.partition(":")
    if not sep:
        return "sound", ref
    if scheme not in SCHEMES:
        raise InvalidReference(f"unknown reference scheme '{scheme}' in {ref!r}")
    if not name:
        raise InvalidReference(f"reference {ref!r} has no name")
    return scheme, name


@dataclass
class _PoolState:
    lock: threading.Lock = field(default_factory=threading.Lock)
    last_selected: Optional[str] = None
    cursor: int = 0
    selections: int = 0


class SoundResolver:
    """Resolves references against the configured sounds, pools and chains."""

    def __init__(
        self,
        sounds: Optional[Dict[str, str]] = None,
        pools: Optional[Dict[str, SoundPool]] = None,
        chains: Optional[Dict[str, ChainDefinition]] = None,
        bundled_dir: Optional[str] = None,
        rng: Union[np.random.Generator, int, None] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._sounds = dict(sounds or {})
        self._pools = dict(pools or {})
        self._chains = dict(chains or {})
        self._bundled_dir = bundled_dir
        self._rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
        self._rng_lock = threading.Lock()
        self._clock = clock
        self._pool_states: Dict[str, _PoolState] = {}
        self._states_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, event_ref: str, volume: float = 1.0) -> PlaybackUnit:
        """Resolve an event reference; chains are returned verbatim, pools are not drawn yet."""
        scheme, name = parse_ref(event_ref)
        if scheme == "pool":
            if name not in self._pools:
                raise NotFound(f"pool '{name}' is not configured")
            return PoolUnit(pool_id=name, volume=volume)
        if scheme == "chain":
            return ChainUnit(chain_id=name, chain=self.get_chain(name))
        return DirectUnit(sound=self._path_for(scheme, name), volume=volume)

    def resolve_sound(self, ref: str) -> str:
        """Resolve a step or pool entry reference to a playable path, drawing from pools."""
        for _ in range(MAX_POOL_NESTING):
            scheme, name = parse_ref(ref)
            if scheme == "chain":
                raise InvalidReference(f"chain reference {ref!r} cannot be played as a single sound")
            if scheme != "pool":
                return self._path_for(scheme, name)
            ref = self.select_from_pool(name)
        raise InvalidReference(f"pool nesting deeper than {MAX_POOL_NESTING} levels")

    def get_chain(self, chain_id: str) -> ChainDefinition:
        chain = self._chains.get(chain_id)
        if chain is None:
            raise NotFound(f"chain '{chain_id}' is not configured")
        return chain

    def get_pool(self, pool_id: str) -> SoundPool:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise NotFound(f"pool '{pool_id}' is not configured")
        return pool

    def _path_for(self, scheme: str, name: str) -> str:
        if scheme == "file":
            return os.path.expanduser(name)
        if scheme == "bundled":
            if not self._bundled_dir:
                raise NotFound(f"bundled sound '{name}' requested but no bundled_dir is configured")
            return os.path.join(os.path.expanduser(self._bundled_dir), name + BUNDLED_EXTENSION)
        target = self._sounds.get(name)
        if target is None:
            raise NotFound(f"sound '{name}' is not configured")
        # catalog entries are plain paths or file:/bundled: references
        scheme, _, rest = target.partition(":")
        if scheme in ("file", "bundled") and rest:
            return self._path_for(scheme, rest)
        return os.path.expanduser(target)

    # ------------------------------------------------------------------
    # Pool selection
    # ------------------------------------------------------------------

    def _state_for(self, pool_id: str) -> _PoolState:
        with self._states_lock:
            state = self._pool_states.get(pool_id)
            if state is None:
                state = self._pool_states[pool_id] = _PoolState()
            return state

    def select_from_pool(self, pool_id: str) -> str:
        """Pick one sound reference from a pool and remember it as last selected."""
        pool = self.get_pool(pool_id)
        if not pool.entries:
            raise InvalidReference(f"pool '{pool_id}' has no entries")

        state = self._state_for(pool_id)
        with state.lock:
            candidates = list(pool.entries)

            if pool.mode == SelectionMode.ADAPTIVE:
                moment = self._clock().time()
                in_window = [e for e in candidates if e.time_window is None or e.time_window.contains(moment)]
                if in_window:
                    candidates = in_window

            avoid = state.last_selected if pool.remember_last else None
            if avoid is not None and not any(e.sound_ref != avoid for e in candidates):
                avoid = None

            if pool.mode == SelectionMode.SEQUENTIAL:
                chosen = self._sequential_pick(candidates, state, avoid)
            else:
                if avoid is not None:
                    candidates = [e for e in candidates if e.sound_ref != avoid]
                if pool.mode in (SelectionMode.WEIGHTED, SelectionMode.ADAPTIVE):
                    chosen = self._weighted_pick(candidates)
                else:
                    chosen = self._uniform_pick(candidates)

            state.last_selected = chosen.sound_ref
            state.selections += 1

        logger.debug(f"[RESOLVER] pool={pool_id} mode={pool.mode.value} -> {chosen.sound_ref}")
        return chosen.sound_ref

    @staticmethod
    def _sequential_pick(entries: List[PoolEntry], state: "_PoolState", avoid: Optional[str]) -> PoolEntry:
        # the cursor walks the full entry list; a repeat of the last pick is stepped over
        for _ in range(len(entries)):
            entry = entries[state.cursor % len(entries)]
            state.cursor += 1
            if entry.sound_ref != avoid:
                return entry
        return entries[(state.cursor - 1) % len(entries)]

    def _uniform_pick(self, candidates: List[PoolEntry]) -> PoolEntry:
        with self._rng_lock:
            index = int(self._rng.integers(len(candidates)))
        return candidates[index]

    def _weighted_pick(self, candidates: List[PoolEntry]) -> PoolEntry:
        total = sum(max(e.weight, 0.0) for e in candidates)
        if total <= 0:
            return self._uniform_pick(candidates)
        with self._rng_lock:
            r = float(self._rng.random()) * total
        cumulative = 0.0
        for entry in candidates:
            cumulative += max(entry.weight, 0.0)
            if cumulative > r:
                return entry
        # float rounding can leave r == total; last positive weight wins
        return [e for e in candidates if e.weight > 0][-1]

    def last_selected(self, pool_id: str) -> Optional[str]:
        with self._states_lock:
            state = self._pool_states.get(pool_id)
        if state is None:
            return None
        with state.lock:
            return state.last_selected

    def get_status(self) -> Dict[str, object]:
        with self._states_lock:
            selections = {pid: s.selections for pid, s in self._pool_states.items()}
        return {
            "sounds": len(self._sounds),
            "pools": len(self._pools),
            "chains": len(self._chains),
            "pool_selections": selections,
        }
