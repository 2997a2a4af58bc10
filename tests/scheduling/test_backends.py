"""Tests for tick backends and tick drift measurement."""

import threading
import time
from datetime import timedelta

import pytest

from cadence.core.clock import ManualClock
from cadence.core.scheduling import (
    ManualSchedulerBackend,
    SchedulerBackend,
    ThreadSchedulerBackend,
    check_tick_interval_stability,
)
from cadence.core.scheduling.protocol import TickTracker

from conftest import T0


class _Counter:
    def __init__(self):
        self.calls = 0
        self.ticked = threading.Event()

    async def __call__(self):
        self.calls += 1
        self.ticked.set()


class TestProtocol:
    def test_backends_satisfy_protocol(self):
        assert isinstance(ThreadSchedulerBackend(), SchedulerBackend)
        assert isinstance(ManualSchedulerBackend(), SchedulerBackend)


class TestTickTracker:
    def test_drift_is_lateness(self):
        now = [100.0]
        tracker = TickTracker(lambda: now[0])
        tracker.arm(10)

        now[0] = 110.5
        tracker.record(T0)
        assert tracker.last_drift_ms == pytest.approx(500.0)

        # next tick expected at 120.5; early ticks count as zero
        now[0] = 119.0
        tracker.record(T0)
        assert tracker.last_drift_ms == 0.0
        assert tracker.max_drift_ms == pytest.approx(500.0)
        assert tracker.tick_count == 2

    def test_tick_times_bounded(self):
        tracker = TickTracker(lambda: 0.0)
        for i in range(60):
            tracker.record(T0 + timedelta(seconds=i))
        assert len(tracker.tick_times) == 50
        assert tracker.tick_times[-1] == T0 + timedelta(seconds=59)


class TestManualBackend:
    def test_fire_runs_callback(self):
        backend = ManualSchedulerBackend()
        counter = _Counter()
        backend.start(counter, interval_seconds=10)

        assert backend.fire(3) == 3
        assert counter.calls == 3
        assert backend.tick_count == 3

    def test_fire_when_stopped(self):
        backend = ManualSchedulerBackend()
        counter = _Counter()
        assert backend.fire() == 0

        backend.start(counter)
        backend.stop()
        assert backend.fire() == 0
        assert not backend.is_running

    def test_drift_from_manual_clock(self):
        clock = ManualClock(T0)
        backend = ManualSchedulerBackend(clock=clock)
        backend.start(_Counter(), interval_seconds=10)

        clock.advance(seconds=12)
        backend.fire()

        health = backend.health()
        assert health["healthy"] is True
        assert health["backend"] == "manual"
        assert health["drift_ms"] == pytest.approx(2000.0)
        assert health["last_tick"] == (T0 + timedelta(seconds=12)).isoformat()
        assert health["interval_seconds"] == 10

    @pytest.mark.asyncio
    async def test_fire_async(self):
        backend = ManualSchedulerBackend()
        counter = _Counter()
        backend.start(counter)
        assert await backend.fire_async() is True
        assert counter.calls == 1


@pytest.mark.slow
class TestThreadBackend:
    """Real threads with short intervals."""

    def test_ticks_until_stopped(self):
        backend = ThreadSchedulerBackend(thread_name="test-ticker")
        counter = _Counter()
        backend.start(counter, interval_seconds=0.05)
        try:
            assert counter.ticked.wait(2.0)
            assert backend.is_running
            assert backend.health()["healthy"] is True
        finally:
            backend.stop()

        calls = counter.calls
        assert not backend.is_running
        assert backend.tick_count >= 1
        time.sleep(0.15)
        assert counter.calls == calls

    def test_failing_tick_does_not_kill_loop(self):
        backend = ThreadSchedulerBackend(thread_name="test-failing")
        done = threading.Event()
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            done.set()

        backend.start(flaky, interval_seconds=0.05)
        try:
            assert done.wait(2.0)
        finally:
            backend.stop()
        assert len(calls) >= 2

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            ThreadSchedulerBackend().start(_Counter(), interval_seconds=0)

    def test_double_start_is_ignored(self):
        backend = ThreadSchedulerBackend(thread_name="test-double")
        backend.start(_Counter(), interval_seconds=0.05)
        try:
            backend.start(_Counter(), interval_seconds=0.05)
            assert backend.is_running
        finally:
            backend.stop()

    def test_stop_before_start(self):
        ThreadSchedulerBackend().stop()


@pytest.mark.slow
class TestAPSchedulerBackend:
    def test_ticks_until_stopped(self):
        pytest.importorskip("apscheduler")
        from cadence.core.scheduling import APSchedulerBackend

        backend = APSchedulerBackend(job_id="test_tick")
        assert isinstance(backend, SchedulerBackend)
        counter = _Counter()
        backend.start(counter, interval_seconds=0.1)
        try:
            assert counter.ticked.wait(3.0)
            health = backend.health()
            assert health["healthy"] is True
            assert health["scheduled_jobs"] == 1
        finally:
            backend.stop()
        assert not backend.is_running


class TestIntervalStability:
    def test_insufficient_data(self):
        assert check_tick_interval_stability([T0])["stable"] is True

    def test_stable(self):
        times = [T0 + timedelta(seconds=10 * i) for i in range(5)]
        result = check_tick_interval_stability(times, expected_interval=10)
        assert result["stable"] is True
        assert result["samples"] == 4
        assert result["avg_interval"] == 10

    def test_unstable(self):
        times = [T0, T0 + timedelta(seconds=10), T0 + timedelta(seconds=40)]
        result = check_tick_interval_stability(times, expected_interval=10)
        assert result["stable"] is False
        assert result["max_deviation"] == 20
