"""
Alert Pipeline

Wires the core together for monitor tasks:

    Snapshot -> TransitionDetector -> upstream gate (quiet hours / profile)
             -> CooldownGate -> SoundResolver
             -> Direct / Pool: PlaybackDispatcher
             -> Chain: ChainSequencer -> PlaybackDispatcher

and exposes the operator surface (run_chain, stop_chain, test_pool).
Alert-path failures are logged and recorded, never raised to the monitor.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union

from ccbell.config import CcbellConfig, UnifiedConfigLoader
from ccbell.modules.chain_sequencing import AlreadyRunning, ChainRunResult, ChainSequencer
from ccbell.modules.cooldown import CooldownGate
from ccbell.modules.playback import (
    AudioOutput,
    NullAudioOutput,
    PlaybackDispatcher,
    PlayHandle,
    PlayPriority,
    SubprocessAudioOutput,
)
from ccbell.modules.sound_resolution import (
    ChainUnit,
    DirectUnit,
    PlaybackUnit,
    PoolUnit,
    SoundResolutionError,
    SoundResolver,
)
from ccbell.modules.transition_detection import (
    Snapshot,
    TransitionDetector,
    TransitionEvent,
    TransitionTier,
)

from .core.error_handler import ErrorCategory, ErrorHandler, ErrorSeverity
from .core.event_bus import EventBus

logger = logging.getLogger(__name__)

# Returns False to veto an alert (quiet hours, muted profile, ...)
AlertGate = Callable[[TransitionEvent], bool]


@dataclass
class AlertDecision:
    """What the pipeline did with one transition"""

    event: TransitionEvent
    action: str  # queued | chain_started | suppressed_gate | suppressed_cooldown | no_sound | skipped
    detail: Optional[str] = None
    handle: Optional[PlayHandle] = None
    chain_task: Optional[asyncio.Task] = None


class AlertPipeline:
    """Process-wide alert core shared by every monitor task"""

    def __init__(
        self,
        config: CcbellConfig,
        output: Optional[AudioOutput] = None,
        gate: Optional[AlertGate] = None,
        event_bus: Optional[EventBus] = None,
        error_handler: Optional[ErrorHandler] = None,
        conditions: Optional[Dict[str, Callable[[], bool]]] = None,
        clock: Callable[[], float] = time.monotonic,
        rng=None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.error_handler = error_handler or ErrorHandler(self.event_bus)
        self._gate = gate

        if output is None:
            playback = config.playback
            output = (
                SubprocessAudioOutput(player=playback.player, timeout_sec=playback.play_timeout_sec)
                if playback.enabled else NullAudioOutput()
            )

        self.detector = TransitionDetector(spec_lookup=config.threshold_for)
        self.cooldown = CooldownGate(clock=clock)
        self.resolver = SoundResolver(
            sounds=config.sounds,
            pools=config.pools,
            chains=config.chains,
            bundled_dir=config.playback.bundled_dir,
            rng=rng,
        )
        self.dispatcher = PlaybackDispatcher(
            output,
            max_queue=config.playback.max_queue,
            play_timeout_sec=config.playback.play_timeout_sec,
        )
        self.sequencer = ChainSequencer(self.resolver, self.dispatcher, conditions=conditions)
        self._background: Set[asyncio.Task] = set()
        # newest snapshot timestamp, in whatever clock the monitors stamp with
        self._latest_snapshot_ts: Optional[float] = None

    @classmethod
    def from_config_file(cls, config_file: Optional[Union[str, Path]] = None, **kwargs) -> "AlertPipeline":
        return cls(UnifiedConfigLoader(config_file).load(), **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.dispatcher.start()

    async def shutdown(self) -> None:
        """Stop running chains, then the playback consumer."""
        await self.sequencer.stop_all()
        await self.dispatcher.stop()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("[PIPELINE] shut down")

    # ------------------------------------------------------------------
    # Alert path
    # ------------------------------------------------------------------

    async def handle_snapshot(self, snapshot: Snapshot) -> List[AlertDecision]:
        """Entry point for monitor tasks."""
        if self._latest_snapshot_ts is None or snapshot.timestamp > self._latest_snapshot_ts:
            self._latest_snapshot_ts = snapshot.timestamp
        decisions = []
        for event in self.detector.evaluate(snapshot.key, snapshot):
            await self.event_bus.publish("alert.transition", event.to_dict())
            decisions.append(await self._handle_transition(event))
        return decisions

    async def _handle_transition(self, event: TransitionEvent) -> AlertDecision:
        monitor = self.config.monitor_for(event.key)
        ref = monitor.sounds.get(event.tier) if monitor else None
        if ref is None:
            logger.debug(f"[PIPELINE] no sound bound for {event.key} tier={event.tier.value}")
            return AlertDecision(event, "no_sound")

        # quiet hours / profile veto first, so a vetoed alert does not start a cooldown
        if self._gate is not None and not self._gate(event):
            return await self._suppressed(event, "suppressed_gate")

        interval = self.config.cooldown_for(event.tier)
        if not self.cooldown.allow(event.key, interval, tier=event.tier):
            return await self._suppressed(event, "suppressed_cooldown")

        priority = PlayPriority.CRITICAL if event.tier == TransitionTier.CRITICAL else PlayPriority.NORMAL
        try:
            unit = self.resolver.resolve(ref, volume=monitor.volume)
            return await self._play_unit(event, unit, priority)
        except SoundResolutionError as e:
            await self.error_handler.handle_error(
                ErrorSeverity.HIGH, ErrorCategory.RESOLUTION,
                f"cannot resolve '{ref}' for {event.key}: {e}",
                {"key": event.key, "tier": event.tier.value, "ref": ref},
            )
            return AlertDecision(event, "skipped", detail=str(e))

    async def _suppressed(self, event: TransitionEvent, action: str) -> AlertDecision:
        logger.debug(f"[PIPELINE] {action}: {event.key} tier={event.tier.value}")
        await self.event_bus.publish("alert.suppressed", {**event.to_dict(), "reason": action})
        return AlertDecision(event, action)

    async def _play_unit(self, event: TransitionEvent, unit: PlaybackUnit, priority: PlayPriority) -> AlertDecision:
        if isinstance(unit, ChainUnit):
            try:
                task = self.sequencer.start(unit.chain_id, priority)
            except AlreadyRunning as e:
                logger.info(f"[PIPELINE] {e}, alert for {event.key} skipped")
                return AlertDecision(event, "skipped", detail=str(e))
            self._spawn(self._watch_chain(unit.chain_id, task))
            await self._dispatched(event, chain=unit.chain_id)
            return AlertDecision(event, "chain_started", chain_task=task)

        if isinstance(unit, PoolUnit):
            sound = self.resolver.resolve_sound(f"pool:{unit.pool_id}")
            volume = unit.volume
        elif isinstance(unit, DirectUnit):
            sound, volume = unit.sound, unit.volume
        else:
            raise TypeError(f"unsupported playback unit: {unit!r}")

        handle = self.dispatcher.submit(sound, volume, priority)
        self._spawn(self._watch_playback(event, handle))
        await self._dispatched(event, sound=sound)
        return AlertDecision(event, "queued", handle=handle)

    async def _dispatched(self, event: TransitionEvent, **extra: Any) -> None:
        logger.info(f"[PIPELINE] alert {event.key} tier={event.tier.value} -> {extra}")
        await self.event_bus.publish("alert.dispatched", {**event.to_dict(), **extra})

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _watch_playback(self, event: TransitionEvent, handle: PlayHandle) -> None:
        result = await handle.wait()
        if result.ok:
            return
        await self.error_handler.handle_error(
            ErrorSeverity.MEDIUM, ErrorCategory.PLAYBACK,
            f"alert sound for {event.key} {result.outcome.value}: {result.error}",
            {"key": event.key, "tier": event.tier.value, "sound": handle.sound},
        )

    async def _watch_chain(self, chain_id: str, task: asyncio.Task) -> None:
        try:
            result: ChainRunResult = await asyncio.shield(task)
        except asyncio.CancelledError:
            return
        await self.event_bus.publish("chain.finished", result.to_dict())
        if result.failures:
            await self.error_handler.handle_error(
                ErrorSeverity.HIGH if not result.completed else ErrorSeverity.LOW,
                ErrorCategory.CHAIN,
                f"chain {chain_id} {result.state.value} with {len(result.failures)} failed step(s)",
                result.to_dict(),
            )

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    async def run_chain(self, chain_id: str) -> ChainRunResult:
        """Run a chain now and wait for it. Raises AlreadyRunning / NotFound."""
        result = await self.sequencer.run(chain_id)
        await self.event_bus.publish("chain.finished", result.to_dict())
        return result

    def stop_chain(self, chain_id: str) -> None:
        """Abort a running chain. Raises NotRunning."""
        self.sequencer.stop(chain_id)

    def test_pool(self, pool_id: str, play: bool = False) -> str:
        """Draw once from a pool, bypassing cooldown; optionally play the pick."""
        sound_ref = self.resolver.select_from_pool(pool_id)
        logger.info(f"[PIPELINE] test_pool {pool_id} -> {sound_ref}")
        if play:
            self.dispatcher.submit(self.resolver.resolve_sound(sound_ref), 1.0, PlayPriority.NORMAL)
        return sound_ref

    def evict_idle(self, max_idle_sec: float, now: Optional[float] = None) -> None:
        """Drop detector and cooldown state for keys idle longer than max_idle_sec.

        Detector idleness is measured on the snapshot clock: ``now`` defaults to
        the newest snapshot timestamp seen. Cooldown idleness uses the gate's clock.
        """
        if now is None:
            now = self._latest_snapshot_ts
        if now is not None:
            self.detector.evict_idle(max_idle_sec, now=now)
        self.cooldown.evict_idle(max_idle_sec)

    def get_status(self) -> Dict[str, Any]:
        return {
            "tracked_keys": len(self.detector.tracked_keys()),
            "cooldown": self.cooldown.get_status(),
            "resolver": self.resolver.get_status(),
            "dispatcher": self.dispatcher.get_status(),
            "running_chains": self.sequencer.running_chains(),
            "errors": self.error_handler.get_status(),
        }
