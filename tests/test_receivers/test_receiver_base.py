"""Tests for MetricReceiver lifecycle and ticking."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from node_telemetry.receivers.base import DRIFT_THRESHOLD, MetricReceiver
from node_telemetry.utils.errors import ReceiverStateError
from node_telemetry.utils.status import ReceiverState

from conftest import drain


class CountingReceiver(MetricReceiver):
    """Receiver emitting one record per pass."""

    def __init__(self, interval=0.05, pass_duration=0.0, **kwargs):
        super().__init__("counting", interval, logger=logging.getLogger("tests"), **kwargs)
        self.pass_duration = pass_duration
        self.started_passes = 0
        self.finished_passes = 0

    async def read_metrics(self):
        self.started_passes += 1
        if self.pass_duration:
            await asyncio.sleep(self.pass_duration)
        await self.emit("passes", {"type": "node"}, self.meta, {"value": self.started_passes})
        self.finished_passes += 1


class TestLifecycle:
    """Test suite for receiver start/close."""

    def test_start_without_loop(self):
        receiver = CountingReceiver()
        receiver.set_sink(object())
        with pytest.raises(ReceiverStateError, match="running event loop"):
            receiver.start()

    @pytest.mark.asyncio
    async def test_start_without_sink(self):
        receiver = CountingReceiver()
        with pytest.raises(ReceiverStateError, match="no sink"):
            receiver.start()
        assert receiver.state is ReceiverState.CONSTRUCTED

    @pytest.mark.asyncio
    async def test_first_pass_runs_immediately(self):
        receiver = CountingReceiver(interval=60.0)
        queue = asyncio.Queue()
        receiver.set_sink(queue)

        receiver.start()
        record = await asyncio.wait_for(queue.get(), timeout=1.0)
        await receiver.close()

        assert record.name == "passes"
        assert record.meta["source"] == "counting"
        assert receiver.state is ReceiverState.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self):
        receiver = CountingReceiver(interval=60.0)
        receiver.set_sink(asyncio.Queue())
        receiver.start()
        try:
            with pytest.raises(ReceiverStateError):
                receiver.start()
        finally:
            await receiver.close()

    @pytest.mark.asyncio
    async def test_restart_after_close_rejected(self):
        receiver = CountingReceiver(interval=60.0)
        receiver.set_sink(asyncio.Queue())
        receiver.start()
        await receiver.close()

        with pytest.raises(ReceiverStateError):
            receiver.start()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        receiver = CountingReceiver(interval=60.0)
        receiver.set_sink(asyncio.Queue())
        receiver.start()

        await receiver.close()
        await receiver.close()

        assert receiver.state is ReceiverState.STOPPED

    @pytest.mark.asyncio
    async def test_close_before_start(self):
        receiver = CountingReceiver()
        await receiver.close()
        assert receiver.state is ReceiverState.STOPPED

    @pytest.mark.asyncio
    async def test_ticks_repeat_passes(self):
        receiver = CountingReceiver(interval=0.02)
        queue = asyncio.Queue()
        receiver.set_sink(queue)

        receiver.start()
        for _ in range(3):
            await asyncio.wait_for(queue.get(), timeout=1.0)
        await receiver.close()

        assert receiver.started_passes >= 3

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            CountingReceiver(missed_tick_policy="drop")


class TestGracefulShutdown:
    """Test suite for the stop rendezvous."""

    @pytest.mark.asyncio
    async def test_close_waits_for_in_flight_pass(self):
        receiver = CountingReceiver(interval=60.0, pass_duration=0.1)
        queue = asyncio.Queue()
        receiver.set_sink(queue)

        receiver.start()
        await asyncio.sleep(0.02)
        assert receiver.started_passes == 1
        assert receiver.finished_passes == 0

        await receiver.close()

        assert receiver.finished_passes == 1
        assert receiver.started_passes == 1
        assert len(drain(queue)) == 1

    @pytest.mark.asyncio
    async def test_nothing_emitted_after_close(self):
        receiver = CountingReceiver(interval=0.01)
        queue = asyncio.Queue()
        receiver.set_sink(queue)

        receiver.start()
        await asyncio.sleep(0.05)
        await receiver.close()
        emitted = queue.qsize()
        await asyncio.sleep(0.05)

        assert queue.qsize() == emitted
        assert receiver._task.done()

    @pytest.mark.asyncio
    async def test_close_unblocks_waiting_tick(self):
        receiver = CountingReceiver(interval=3600.0)
        receiver.set_sink(asyncio.Queue())
        receiver.start()
        await asyncio.sleep(0.01)

        await asyncio.wait_for(receiver.close(), timeout=1.0)

        assert receiver.started_passes == 1

    @pytest.mark.asyncio
    async def test_failing_pass_does_not_stop_loop(self, caplog):
        receiver = CountingReceiver(interval=0.01)
        receiver.read_metrics = AsyncMock(side_effect=[RuntimeError("sensor tool crashed"), None, None])
        receiver.set_sink(asyncio.Queue())

        with caplog.at_level(logging.ERROR):
            receiver.start()
            await asyncio.sleep(0.05)
            await receiver.close()

        assert receiver.read_metrics.await_count >= 2
        assert "sensor tool crashed" in caplog.text


class TestDrift:
    """Test suite for tick drift handling."""

    def test_late_tick_logs_drift(self, caplog):
        receiver = CountingReceiver(interval=10.0)

        with caplog.at_level(logging.WARNING):
            receiver._handle_tick(scheduled=100.0, now=100.0 + DRIFT_THRESHOLD + 1)

        assert "missed ticker event" in caplog.text

    def test_punctual_tick_does_not_log(self, caplog):
        receiver = CountingReceiver(interval=10.0)

        with caplog.at_level(logging.WARNING):
            next_tick = receiver._handle_tick(scheduled=100.0, now=100.5)

        assert next_tick == 110.0
        assert "missed ticker event" not in caplog.text

    def test_coalesce_realigns_to_grid(self):
        receiver = CountingReceiver(interval=10.0)
        assert receiver._handle_tick(scheduled=100.0, now=135.0) == 140.0

    def test_replay_keeps_every_tick(self):
        receiver = CountingReceiver(interval=10.0, missed_tick_policy="replay")
        assert receiver._handle_tick(scheduled=100.0, now=135.0) == 110.0

    @pytest.mark.asyncio
    async def test_late_tick_runs_pass_exactly_once(self, caplog):
        receiver = CountingReceiver(interval=10.0)
        receiver.set_sink(asyncio.Queue())
        # start, wait #1, tick #1 (6s late), wait #2
        receiver._clock = iter([0.0, 16.0, 16.0, 16.0]).__next__
        receiver._stop = asyncio.Event()
        receiver._wait_for_tick = AsyncMock(side_effect=[False, True])

        with caplog.at_level(logging.WARNING):
            await receiver._run()

        assert receiver.started_passes == 2
        assert receiver.passes == 2
        assert caplog.text.count("missed ticker event") == 1

    @pytest.mark.asyncio
    async def test_stop_checked_before_each_pass(self):
        receiver = CountingReceiver(interval=10.0)
        receiver.set_sink(asyncio.Queue())
        receiver._stop = asyncio.Event()
        receiver._stop.set()

        await receiver._run()

        assert receiver.started_passes == 0
