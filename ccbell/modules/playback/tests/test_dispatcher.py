"""
Tests for PlaybackDispatcher
"""

import asyncio
import threading
import time

import pytest

from ccbell.modules.playback import (
    NullAudioOutput,
    PlaybackDispatcher,
    PlaybackError,
    PlayOutcome,
    PlayPriority,
)


class RecordingOutput:
    """Fake AudioOutput that records calls and detects overlap"""

    timeout_sec = None

    def __init__(self, duration=0.01, fail_on=(), hold=()):
        self.duration = duration
        self.fail_on = set(fail_on)
        self.hold = set(hold)
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def play(self, sound_path, volume):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.calls.append((sound_path, volume))
        self.started.set()
        try:
            if sound_path in self.hold:
                await self.release.wait()
            else:
                await asyncio.sleep(self.duration)
            if sound_path in self.fail_on:
                raise PlaybackError(f"cannot play {sound_path}")
        finally:
            self.active -= 1


def played(output):
    return [path for path, _ in output.calls]


class TestPlaybackDispatcher:
    """Тесты для PlaybackDispatcher"""

    @pytest.mark.asyncio
    async def test_concurrent_submissions_play_sequentially_in_order(self):
        output = RecordingOutput(duration=0.02)
        dispatcher = PlaybackDispatcher(output)

        async def monitor(sound):
            return await dispatcher.play(sound, 0.5)

        results = await asyncio.gather(monitor("a.wav"), monitor("b.wav"), monitor("c.wav"))

        assert [r.outcome for r in results] == [PlayOutcome.PLAYED] * 3
        assert played(output) == ["a.wav", "b.wav", "c.wav"]
        assert output.max_active == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_critical_jumps_queue_but_not_in_flight(self):
        output = RecordingOutput(hold={"first"})
        dispatcher = PlaybackDispatcher(output)

        first = dispatcher.submit("first")
        await output.started.wait()
        normal = dispatcher.submit("normal")
        low = dispatcher.submit("low", priority=PlayPriority.LOW)
        critical = dispatcher.submit("critical", priority=PlayPriority.CRITICAL)

        assert dispatcher.in_flight is first
        output.release.set()
        await asyncio.gather(first.wait(), normal.wait(), low.wait(), critical.wait())

        assert played(output) == ["first", "critical", "normal", "low"]
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops_non_critical(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output, max_queue=2)

        dispatcher.submit("busy")
        await output.started.wait()
        dispatcher.submit("q1")
        dispatcher.submit("q2")
        dropped = dispatcher.submit("q3")

        assert dropped.done()
        assert dropped.result().outcome == PlayOutcome.DROPPED
        assert dispatcher.pending_count == 2
        assert dispatcher.get_stats().dropped == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_critical_evicts_oldest_lowest_priority(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output, max_queue=3)

        dispatcher.submit("busy")
        await output.started.wait()
        normal = dispatcher.submit("normal")
        low_old = dispatcher.submit("low-old", priority=PlayPriority.LOW)
        low_new = dispatcher.submit("low-new", priority=PlayPriority.LOW)
        critical = dispatcher.submit("crit", priority=PlayPriority.CRITICAL)

        assert low_old.result().outcome == PlayOutcome.DROPPED
        assert not critical.done()

        output.release.set()
        await asyncio.gather(critical.wait(), normal.wait(), low_new.wait())
        assert played(output) == ["busy", "crit", "normal", "low-new"]
        assert dispatcher.get_stats().evicted == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_critical_dropped_when_queue_is_all_critical(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output, max_queue=1)

        dispatcher.submit("busy")
        await output.started.wait()
        dispatcher.submit("c1", priority=PlayPriority.CRITICAL)
        c2 = dispatcher.submit("c2", priority=PlayPriority.CRITICAL)

        assert c2.result().outcome == PlayOutcome.DROPPED
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_failure_is_attributed_to_one_submission(self):
        output = RecordingOutput(fail_on={"bad.wav"})
        dispatcher = PlaybackDispatcher(output)

        bad = dispatcher.submit("bad.wav")
        good = dispatcher.submit("good.wav")

        bad_result = await bad
        good_result = await good
        assert bad_result.outcome == PlayOutcome.FAILED
        assert "bad.wav" in bad_result.error
        assert good_result.ok
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_timeout_fails_submission_and_consumer_proceeds(self):
        output = RecordingOutput(hold={"hung.wav"})
        dispatcher = PlaybackDispatcher(output, play_timeout_sec=0.05)

        hung = await dispatcher.play("hung.wav")
        after = await dispatcher.play("after.wav")

        assert hung.outcome == PlayOutcome.FAILED
        assert hung.error == "timeout"
        assert after.ok
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_timeout_defaults_to_output_setting(self):
        output = RecordingOutput()
        output.timeout_sec = 2.5
        dispatcher = PlaybackDispatcher(output)
        assert dispatcher.get_status()["play_timeout_sec"] == 2.5

    @pytest.mark.asyncio
    async def test_cancel_withdraws_queued_request(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output)

        busy = dispatcher.submit("busy")
        await output.started.wait()
        queued = dispatcher.submit("queued")

        assert dispatcher.cancel(queued) is True
        assert dispatcher.cancel(busy) is False
        assert queued.result().outcome == PlayOutcome.CANCELLED

        output.release.set()
        await busy
        await asyncio.sleep(0.02)
        assert played(output) == ["busy"]
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_and_in_flight(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output)

        busy = dispatcher.submit("busy")
        await output.started.wait()
        queued = dispatcher.submit("queued")

        await dispatcher.stop()

        assert busy.result().outcome == PlayOutcome.CANCELLED
        assert queued.result().outcome == PlayOutcome.CANCELLED
        assert dispatcher.is_running is False

    @pytest.mark.asyncio
    async def test_volume_is_clamped(self):
        output = RecordingOutput()
        dispatcher = PlaybackDispatcher(output)
        await dispatcher.play("loud.wav", 3.0)
        await dispatcher.play("quiet.wav", -1)
        assert [v for _, v in output.calls] == [1.0, 0.0]
        await dispatcher.stop()

    def test_invalid_queue_size(self):
        with pytest.raises(ValueError):
            PlaybackDispatcher(RecordingOutput(), max_queue=0)


class TestCrossThreadSubmission:
    """Тесты отправки из потоков мониторинга"""

    @pytest.mark.asyncio
    async def test_thread_submission_wakes_idle_consumer(self):
        output = RecordingOutput()
        dispatcher = PlaybackDispatcher(output)
        dispatcher.start()
        await asyncio.sleep(0)
        loop = asyncio.get_running_loop()
        handles = []

        def monitor_thread():
            time.sleep(0.05)
            handles.append(dispatcher.submit("disk.wav", 0.7))

        started_at = loop.time()
        thread = threading.Thread(target=monitor_thread)
        thread.start()
        await asyncio.wait_for(output.started.wait(), timeout=2.0)
        thread.join()

        assert loop.time() - started_at < 1.0
        result = await asyncio.wait_for(handles[0].wait(), timeout=1.0)
        assert result.outcome == PlayOutcome.PLAYED
        assert output.calls == [("disk.wav", 0.7)]
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_thread_submission_before_start_uses_given_loop(self):
        output = RecordingOutput()
        dispatcher = PlaybackDispatcher(output, loop=asyncio.get_running_loop())

        handle = await asyncio.to_thread(dispatcher.submit, "battery.wav")
        result = await asyncio.wait_for(handle.wait(), timeout=1.0)

        assert result.outcome == PlayOutcome.PLAYED
        assert dispatcher.is_running
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_thread_drop_resolves_on_loop(self):
        output = RecordingOutput(hold={"busy"})
        dispatcher = PlaybackDispatcher(output, max_queue=1)
        dispatcher.submit("busy")
        await output.started.wait()
        dispatcher.submit("queued")

        handle = await asyncio.to_thread(dispatcher.submit, "extra")
        result = await asyncio.wait_for(handle.wait(), timeout=1.0)

        assert result.outcome == PlayOutcome.DROPPED
        output.release.set()
        await dispatcher.stop()

    def test_submit_without_any_loop_is_rejected(self):
        dispatcher = PlaybackDispatcher(NullAudioOutput())
        with pytest.raises(PlaybackError):
            dispatcher.submit("a.wav")
        assert dispatcher.pending_count == 0
