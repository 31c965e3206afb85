"""
Chain Sequencer

Runs multi-step, optionally looping sound chains through the playback
dispatcher. Per chain id: Idle -> Running -> {Completed, Aborted}; at most
one Running execution per id.

Stop is cooperative: it is observed in delay / post-duration waits, before
each dispatcher submission, and while a step's request is still queued.
Audio already playing is not interrupted. stop() may be called from any
thread; the request is delivered on the chain's loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ccbell.modules.playback import PlaybackDispatcher, PlayPriority
from ccbell.modules.sound_resolution import ChainDefinition, ChainStep, SoundResolutionError, SoundResolver
from ccbell.utils.loop_utils import call_in_loop

from .types import (
    AlreadyRunning,
    ChainRunResult,
    ChainRuntime,
    ChainState,
    NotRunning,
    StepFailure,
)

logger = logging.getLogger(__name__)


class ChainSequencer:
    """Executes chains; one ChainRuntime per running chain id."""

    def __init__(
        self,
        resolver: SoundResolver,
        dispatcher: PlaybackDispatcher,
        conditions: Optional[Dict[str, Callable[[], bool]]] = None,
    ) -> None:
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._conditions = dict(conditions or {})
        self._runtimes: Dict[str, ChainRuntime] = {}
        self._stop_events: Dict[str, asyncio.Event] = {}
        self._loops: Dict[str, asyncio.AbstractEventLoop] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    def register_condition(self, name: str, predicate: Callable[[], bool]) -> None:
        self._conditions[name] = predicate

    # ------------------------------------------------------------------
    # Run / stop
    # ------------------------------------------------------------------

    def _claim(
        self, chain_id: str, loop: asyncio.AbstractEventLoop
    ) -> Tuple[ChainDefinition, ChainRuntime, asyncio.Event]:
        chain = self._resolver.get_chain(chain_id)
        with self._lock:
            current = self._runtimes.get(chain_id)
            if current is not None and current.state == ChainState.RUNNING:
                raise AlreadyRunning(f"chain '{chain_id}' is already running")
            runtime = ChainRuntime(
                chain_id=chain_id,
                state=ChainState.RUNNING,
                remaining_repeats=max(chain.repeat_count, 1) - 1,
            )
            stop_event = asyncio.Event()
            self._runtimes[chain_id] = runtime
            self._stop_events[chain_id] = stop_event
            self._loops[chain_id] = loop
        logger.info(f"[CHAIN] {chain_id} running ({len(chain.steps)} steps, loop={chain.loop}, "
                    f"repeat_count={chain.repeat_count})")
        return chain, runtime, stop_event

    async def run(self, chain_id: str, priority: PlayPriority = PlayPriority.NORMAL) -> ChainRunResult:
        """Run a chain to completion or abort. Raises AlreadyRunning / NotFound."""
        chain, runtime, stop_event = self._claim(chain_id, asyncio.get_running_loop())
        return await self._execute(chain, runtime, stop_event, priority)

    def start(self, chain_id: str, priority: PlayPriority = PlayPriority.NORMAL) -> "asyncio.Task[ChainRunResult]":
        """Run a chain in the background. Raises AlreadyRunning / NotFound immediately.

        Must be called on the event loop; RuntimeError otherwise, with nothing claimed.
        """
        loop = asyncio.get_running_loop()
        chain, runtime, stop_event = self._claim(chain_id, loop)
        task = loop.create_task(
            self._execute(chain, runtime, stop_event, priority), name=f"ccbell-chain-{chain_id}"
        )
        with self._lock:
            self._tasks[chain_id] = task
        task.add_done_callback(lambda t: self._forget_task(chain_id, t))
        return task

    def _forget_task(self, chain_id: str, task: asyncio.Task) -> None:
        with self._lock:
            if self._tasks.get(chain_id) is task:
                del self._tasks[chain_id]

    def stop(self, chain_id: str) -> None:
        """Request a running chain to abort. Raises NotRunning."""
        with self._lock:
            runtime = self._runtimes.get(chain_id)
            if runtime is None or runtime.state != ChainState.RUNNING:
                raise NotRunning(f"chain '{chain_id}' is not running")
            stop_event = self._stop_events[chain_id]
            loop = self._loops[chain_id]
        logger.info(f"[CHAIN] stop requested for {chain_id}")
        call_in_loop(loop, stop_event.set)

    async def stop_all(self) -> None:
        """Stop every running chain and wait for background runs to finish."""
        with self._lock:
            running = [cid for cid, rt in self._runtimes.items() if rt.state == ChainState.RUNNING]
            events = [(self._loops[cid], self._stop_events[cid]) for cid in running]
            tasks = list(self._tasks.values())
        for loop, event in events:
            call_in_loop(loop, event.set)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        chain: ChainDefinition,
        runtime: ChainRuntime,
        stop_event: asyncio.Event,
        priority: PlayPriority,
    ) -> ChainRunResult:
        result = ChainRunResult(chain_id=chain.chain_id)
        try:
            await self._step_loop(chain, runtime, stop_event, priority, result)
        except asyncio.CancelledError:
            self._finish(runtime, result, ChainState.ABORTED, "cancelled")
            raise
        finally:
            if runtime.state == ChainState.RUNNING:
                self._finish(runtime, result, ChainState.ABORTED, "interrupted")
        return result

    async def _step_loop(
        self,
        chain: ChainDefinition,
        runtime: ChainRuntime,
        stop_event: asyncio.Event,
        priority: PlayPriority,
        result: ChainRunResult,
    ) -> None:
        if not chain.steps:
            self._finish(runtime, result, ChainState.COMPLETED)
            return

        while True:
            for index, step in enumerate(chain.steps):
                runtime.step_index = index
                if stop_event.is_set():
                    return self._finish(runtime, result, ChainState.ABORTED, "stopped")

                if self._condition_holds(chain.chain_id, step):
                    if not await self._wait(step.delay_before_ms, stop_event) or stop_event.is_set():
                        return self._finish(runtime, result, ChainState.ABORTED, "stopped")

                    error, stopped = await self._play_step(step, stop_event, priority)
                    if stopped:
                        return self._finish(runtime, result, ChainState.ABORTED, "stopped")
                    if error is None:
                        result.steps_played += 1
                    else:
                        result.failures.append(StepFailure(index, step.sound_ref, error, step.required))
                        if step.required:
                            logger.warning(f"[CHAIN] {chain.chain_id} step {index} ({step.sound_ref}) failed: {error}")
                            return self._finish(runtime, result, ChainState.ABORTED, f"required step {index} failed")
                        logger.info(f"[CHAIN] {chain.chain_id} optional step {index} failed: {error}")
                else:
                    result.steps_skipped += 1

                if not await self._wait(step.post_duration_ms, stop_event):
                    return self._finish(runtime, result, ChainState.ABORTED, "stopped")

            result.passes += 1
            if chain.loop:
                # yield so an all-skipped zero-wait loop cannot starve the event loop
                await asyncio.sleep(0)
                continue
            if runtime.remaining_repeats > 0:
                runtime.remaining_repeats -= 1
                continue
            return self._finish(runtime, result, ChainState.COMPLETED)

    def _condition_holds(self, chain_id: str, step: ChainStep) -> bool:
        condition = step.condition
        if condition is None:
            return True
        predicate = self._conditions.get(condition) if isinstance(condition, str) else condition
        if predicate is None:
            logger.warning(f"[CHAIN] {chain_id}: unknown step condition '{condition}', skipping step")
            return False
        try:
            return bool(predicate())
        except Exception as e:
            logger.warning(f"[CHAIN] {chain_id}: step condition raised {e!r}, skipping step")
            return False

    @staticmethod
    async def _wait(delay_ms: int, stop_event: asyncio.Event) -> bool:
        """Sleep for delay_ms; False if a stop arrived first."""
        if delay_ms <= 0:
            return not stop_event.is_set()
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000.0)
        except asyncio.TimeoutError:
            return True
        return False

    async def _play_step(
        self,
        step: ChainStep,
        stop_event: asyncio.Event,
        priority: PlayPriority,
    ) -> Tuple[Optional[str], bool]:
        """Returns (error, stopped)."""
        try:
            sound = self._resolver.resolve_sound(step.sound_ref)
        except SoundResolutionError as e:
            return str(e), False

        handle = self._dispatcher.submit(sound, step.volume, priority)
        if handle.done():
            outcome = handle.result()
            return (None if outcome.ok else f"{outcome.outcome.value}: {outcome.error}"), False

        waiter = asyncio.ensure_future(handle.wait())
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            done, _ = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not waiter.done():
                waiter.cancel()

        if waiter in done:
            outcome = waiter.result()
            return (None if outcome.ok else f"{outcome.outcome.value}: {outcome.error}"), False

        self._dispatcher.cancel(handle)
        return None, True

    def _finish(self, runtime: ChainRuntime, result: ChainRunResult, state: ChainState,
                reason: Optional[str] = None) -> None:
        with self._lock:
            runtime.state = state
        result.state = state
        result.reason = reason
        logger.info(f"[CHAIN] {runtime.chain_id} {state.value}"
                    f"{f' ({reason})' if reason else ''}: played={result.steps_played} passes={result.passes}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_runtime(self, chain_id: str) -> Optional[ChainRuntime]:
        with self._lock:
            return self._runtimes.get(chain_id)

    def is_running(self, chain_id: str) -> bool:
        runtime = self.get_runtime(chain_id)
        return runtime is not None and runtime.state == ChainState.RUNNING

    def running_chains(self) -> List[str]:
        with self._lock:
            return [cid for cid, rt in self._runtimes.items() if rt.state == ChainState.RUNNING]
