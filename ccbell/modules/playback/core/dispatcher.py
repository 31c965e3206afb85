"""
Playback Dispatcher

Serializes play requests from every monitor and chain onto the single
AudioOutput. One consumer task drains a bounded priority queue and awaits
each play call before taking the next, so the output never sees
overlapping calls.

submit() and cancel() may be called from any thread once the dispatcher
knows its loop (passed in or captured by start()); completion and wakeups
are always delivered on the loop thread.

Queue policy:
- higher priority first, FIFO within a priority
- in-flight playback is never preempted
- when full, non-critical submissions are dropped; a critical submission
  evicts the oldest entry of the lowest queued non-critical priority
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ccbell.utils.loop_utils import call_in_loop, on_loop

from .interfaces import AudioOutput
from .types import PlaybackError, PlayHandle, PlayOutcome, PlayPriority, PlayResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE = 32


@dataclass
class DispatcherStats:
    submitted: int = 0
    played: int = 0
    failed: int = 0
    dropped: int = 0
    evicted: int = 0
    cancelled: int = 0


class PlaybackDispatcher:
    """Single-consumer playback queue in front of an AudioOutput."""

    def __init__(
        self,
        output: AudioOutput,
        max_queue: int = DEFAULT_MAX_QUEUE,
        play_timeout_sec: Optional[float] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if max_queue < 1:
            raise ValueError("max_queue must be at least 1")
        self._output = output
        self._max_queue = max_queue
        self._play_timeout_sec = (
            play_timeout_sec if play_timeout_sec is not None else getattr(output, "timeout_sec", None)
        )
        self._queue: List[PlayHandle] = []
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._stats = DispatcherStats()
        self._loop: Optional[asyncio.AbstractEventLoop] = loop
        self._wakeup: Optional[asyncio.Event] = None
        self._consumer: Optional[asyncio.Task] = None
        self._in_flight: Optional[PlayHandle] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        """Start the consumer task on the running event loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._consumer = self._loop.create_task(self._consume(), name="ccbell-playback-consumer")
        logger.info(f"[DISPATCHER] started (max_queue={self._max_queue}, timeout={self._play_timeout_sec})")

    async def stop(self) -> None:
        """Stop the consumer; queued and in-flight submissions resolve as cancelled."""
        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

        with self._lock:
            pending, self._queue = self._queue, []
        in_flight, self._in_flight = self._in_flight, None
        if in_flight is not None:
            pending.insert(0, in_flight)
        for handle in pending:
            if not handle.done():
                self._stats.cancelled += 1
                handle._resolve(PlayResult(PlayOutcome.CANCELLED, "dispatcher stopped"))
        logger.info(f"[DISPATCHER] stopped, {len(pending)} pending request(s) cancelled")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        sound: str,
        volume: float = 1.0,
        priority: PlayPriority = PlayPriority.NORMAL,
    ) -> PlayHandle:
        """Queue a sound for playback. Never blocks; the handle carries the outcome."""
        self._ensure_consumer()

        volume = min(1.0, max(0.0, float(volume)))
        priority = PlayPriority(priority)
        handle = PlayHandle(next(self._ids), sound, volume, priority, self._loop.create_future())

        evicted: Optional[PlayHandle] = None
        accepted = True
        with self._lock:
            self._stats.submitted += 1
            if len(self._queue) >= self._max_queue:
                evicted = self._eviction_candidate() if priority == PlayPriority.CRITICAL else None
                if evicted is None:
                    accepted = False
                else:
                    self._queue.remove(evicted)
                    self._stats.evicted += 1
            if accepted:
                self._insert(handle)
            else:
                self._stats.dropped += 1

        if evicted is not None:
            logger.info(f"[DISPATCHER] queue full, evicted #{evicted.request_id} for critical #{handle.request_id}")
            call_in_loop(self._loop, evicted._resolve, PlayResult(PlayOutcome.DROPPED, "evicted by critical request"))
        if not accepted:
            logger.warning(f"[DISPATCHER] queue full ({self._max_queue}), dropped {sound} ({priority.name})")
            call_in_loop(self._loop, handle._resolve, PlayResult(PlayOutcome.DROPPED, "queue full"))
            return handle

        self._notify()
        return handle

    async def play(
        self,
        sound: str,
        volume: float = 1.0,
        priority: PlayPriority = PlayPriority.NORMAL,
    ) -> PlayResult:
        """Submit and wait for the outcome."""
        return await self.submit(sound, volume, priority).wait()

    def cancel(self, handle: PlayHandle) -> bool:
        """Withdraw a queued (not in-flight) submission."""
        with self._lock:
            try:
                self._queue.remove(handle)
            except ValueError:
                return False
            self._stats.cancelled += 1
        call_in_loop(self._loop, handle._resolve, PlayResult(PlayOutcome.CANCELLED, "withdrawn"))
        return True

    def _ensure_consumer(self) -> None:
        if self.is_running:
            return
        if self._loop is not None and not on_loop(self._loop):
            # start() must run on the loop thread; it is idempotent
            self._loop.call_soon_threadsafe(self.start)
            return
        try:
            self.start()
        except RuntimeError:
            raise PlaybackError("dispatcher has no event loop: start() it on its loop or pass loop=") from None

    def _notify(self) -> None:
        # a consumer scheduled but not yet started drains the queue on its first pass
        if self._wakeup is not None:
            call_in_loop(self._loop, self._wakeup.set)

    def _insert(self, handle: PlayHandle) -> None:
        # after every queued entry of equal or higher priority
        index = len(self._queue)
        for i, queued in enumerate(self._queue):
            if queued.priority < handle.priority:
                index = i
                break
        self._queue.insert(index, handle)

    def _eviction_candidate(self) -> Optional[PlayHandle]:
        victims = [h for h in self._queue if h.priority < PlayPriority.CRITICAL]
        if not victims:
            return None
        lowest = min(h.priority for h in victims)
        # queue order is FIFO within a priority, so the first match is the oldest
        return next(h for h in victims if h.priority == lowest)

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    def _pop(self) -> Optional[PlayHandle]:
        with self._lock:
            return self._queue.pop(0) if self._queue else None

    async def _consume(self) -> None:
        while True:
            handle = self._pop()
            if handle is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            if handle.done():
                continue

            self._in_flight = handle
            result = await self._play_one(handle)
            self._in_flight = None
            handle._resolve(result)

    async def _play_one(self, handle: PlayHandle) -> PlayResult:
        logger.debug(f"[DISPATCHER] playing #{handle.request_id} {handle.sound} vol={handle.volume:.2f}")
        try:
            if self._play_timeout_sec:
                await asyncio.wait_for(self._output.play(handle.sound, handle.volume), self._play_timeout_sec)
            else:
                await self._output.play(handle.sound, handle.volume)
        except asyncio.TimeoutError:
            self._stats.failed += 1
            logger.warning(f"[DISPATCHER] playback of {handle.sound} timed out after {self._play_timeout_sec}s")
            return PlayResult(PlayOutcome.FAILED, "timeout")
        except PlaybackError as e:
            self._stats.failed += 1
            logger.warning(f"[DISPATCHER] playback of {handle.sound} failed: {e}")
            return PlayResult(PlayOutcome.FAILED, str(e))
        except Exception as e:
            self._stats.failed += 1
            logger.error(f"[DISPATCHER] unexpected output error for {handle.sound}: {e}")
            return PlayResult(PlayOutcome.FAILED, str(e))

        self._stats.played += 1
        return PlayResult(PlayOutcome.PLAYED)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def in_flight(self) -> Optional[PlayHandle]:
        return self._in_flight

    def get_stats(self) -> DispatcherStats:
        return self._stats

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "pending": self.pending_count,
            "max_queue": self._max_queue,
            "in_flight": self._in_flight.sound if self._in_flight else None,
            "play_timeout_sec": self._play_timeout_sec,
            "stats": vars(self._stats).copy(),
        }
