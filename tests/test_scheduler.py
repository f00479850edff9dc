"""Unit tests for MonitorScheduler."""

import threading
import time

import pytest
from PySide6.QtCore import QThreadPool

from aznetmon.broadcaster import Broadcaster
from aznetmon.models import ProbeOutcome, Target
from aznetmon.scheduler import MonitorScheduler, SchedulerState
from aznetmon.store import ResultStore
from conftest import FakeChannel, ScriptedProber, wait_until


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_scheduler(targets, results, **kwargs):
    store = ResultStore(targets)
    broadcaster = Broadcaster(store)
    prober = ScriptedProber(results)
    scheduler = MonitorScheduler(store, broadcaster, prober, **kwargs)
    return scheduler, store, broadcaster, prober


def tick_and_wait(scheduler):
    scheduler._on_tick()
    assert wait_until(lambda: scheduler.get_stats()["in_flight"] == 0)


class TestMonitorScheduler:
    """Test suite for MonitorScheduler state and ticks."""

    def test_initial_state(self):
        scheduler, *_ = make_scheduler([Target.icmp("10.0.0.1")], {})

        assert scheduler.state == SchedulerState.IDLE
        assert not scheduler.is_running
        assert scheduler.deadline is None
        assert scheduler.get_stats()["ticks"] == 0
        assert isinstance(scheduler.thread_pool, QThreadPool)

    def test_start_and_stop(self):
        scheduler, *_ = make_scheduler([Target.icmp("10.0.0.1")], {}, interval_ms=2000, summary_interval_ms=30000)
        stopped = []
        scheduler.stopped.connect(lambda: stopped.append(True))

        scheduler.start()
        assert scheduler.is_running
        assert scheduler.timer.isActive()
        assert scheduler.timer.interval() == 2000
        assert scheduler.summary_timer.interval() == 30000

        scheduler.stop()
        assert scheduler.state == SchedulerState.STOPPED
        assert not scheduler.timer.isActive()
        assert not scheduler.summary_timer.isActive()
        assert stopped == [True]

    def test_stopped_scheduler_cannot_restart(self):
        scheduler, *_ = make_scheduler([Target.icmp("10.0.0.1")], {})
        scheduler.start()
        scheduler.stop()
        scheduler.start()

        assert scheduler.state == SchedulerState.STOPPED

    def test_tick_ignored_unless_running(self):
        scheduler, _, _, prober = make_scheduler([Target.icmp("10.0.0.1")], {})

        scheduler._on_tick()

        assert prober.calls == []

    def test_tick_probes_every_target(self):
        targets = [Target.icmp("10.0.0.1"), Target.tcp("example.com", 443), Target.icmp("10.0.0.2")]
        scheduler, store, _, prober = make_scheduler(targets, {"example.com-tcp-443": 20.0})
        scheduler.start()

        tick_and_wait(scheduler)

        assert sorted(t.key for t in prober.calls) == sorted(t.key for t in targets)
        assert all(store.summary(t).total_tests == 1 for t in targets)
        stats = scheduler.get_stats()
        assert stats["ticks"] == 1
        assert stats["launched"] == 3
        scheduler.stop()

    def test_outcomes_are_published(self):
        target = Target.tcp("example.com", 443)
        scheduler, _, broadcaster, _ = make_scheduler([target], {target.key: 20.0})
        channel = FakeChannel()
        broadcaster.subscribe(channel)
        broadcaster.start()
        scheduler.start()

        try:
            tick_and_wait(scheduler)
            assert wait_until(lambda: channel.count() == 1)
            message = channel.messages()[0]
            assert message["target"] == "example.com"
            assert message["port"] == 443
            assert message["success"] is True
        finally:
            scheduler.stop()
            broadcaster.stop()

    def test_summary_tick_publishes_dashboard_summary(self):
        target = Target.icmp("10.0.0.1")
        scheduler, _, broadcaster, _ = make_scheduler([target], {})
        scheduler.start()

        scheduler._on_summary_tick()
        message = broadcaster._queue.get_nowait()

        assert message["type"] == "summary"
        assert message["summary"]["total_targets"] == 1
        assert message["summary"]["target_stats"][0]["target"] == "10.0.0.1"
        scheduler.stop()

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            make_scheduler([Target.icmp("a")], {}, interval_ms=0)
        with pytest.raises(ValueError):
            make_scheduler([Target.icmp("a")], {}, duration_s=0)


class TestRunDuration:
    """Test the deadline check performed on each tick."""

    def test_no_tick_after_deadline(self):
        clock = FakeClock(1000.0)
        target = Target.icmp("10.0.0.1")
        scheduler, _, _, prober = make_scheduler([target], {target.key: 1.0}, duration_s=10, clock=clock)
        stopped = []
        scheduler.stopped.connect(lambda: stopped.append(True))
        scheduler.start()
        assert scheduler.deadline == 1010.0

        clock.now = 1005.0
        tick_and_wait(scheduler)
        assert len(prober.calls) == 1

        clock.now = 1010.0
        scheduler._on_tick()

        assert scheduler.state == SchedulerState.STOPPED
        assert stopped == [True]
        assert len(prober.calls) == 1
        assert scheduler.get_stats()["launched"] == 1

        clock.now = 1011.0
        scheduler._on_tick()
        assert len(prober.calls) == 1

    def test_without_duration_never_stops(self):
        clock = FakeClock(0.0)
        target = Target.icmp("10.0.0.1")
        scheduler, *_ = make_scheduler([target], {target.key: 1.0}, clock=clock)
        scheduler.start()

        clock.now = 10.0**9
        tick_and_wait(scheduler)

        assert scheduler.is_running
        assert not scheduler.deadline_passed()
        scheduler.stop()


class TestScenarios:
    """End-to-end tick scenarios."""

    def test_unresolvable_icmp_target(self):
        target = Target.icmp("10.0.0.1")
        scheduler, store, *_ = make_scheduler([target], {target.key: "Failed to resolve 10.0.0.1: no such host"})
        scheduler.start()

        tick_and_wait(scheduler)
        summary = store.summary(target)

        assert summary.total_tests == 1
        assert summary.failed == 1
        assert summary.successful == 0
        assert summary.packet_loss_percent == 100.0
        assert summary.avg_latency_ms == 0.0
        scheduler.stop()

    def test_healthy_tcp_target_three_ticks(self):
        target = Target.tcp("example.com", 443)
        scheduler, store, *_ = make_scheduler([target], {target.key: 20.0})
        scheduler.start()

        for _ in range(3):
            tick_and_wait(scheduler)
        summary = store.summary(target)

        assert summary.total_tests == 3
        assert summary.successful == 3
        assert summary.avg_latency_ms == pytest.approx(20.0)
        assert summary.packet_loss_percent == 0.0
        scheduler.stop()

    def test_one_up_one_down(self):
        up, down = Target.tcp("example.com", 443), Target.icmp("10.0.0.1")
        scheduler, store, *_ = make_scheduler([up, down], {up.key: 15.0, down.key: "timeout"})
        scheduler.start()

        for _ in range(4):
            tick_and_wait(scheduler)
        dashboard = store.dashboard_summary()

        assert dashboard.online_targets == 1
        assert dashboard.offline_targets == 1
        assert dashboard.avg_latency_ms == pytest.approx(store.summary(up).avg_latency_ms)
        scheduler.stop()


class SleepingProber:
    """Prober whose every probe blocks for a fixed delay, then succeeds."""

    def __init__(self, delay):
        self.delay = delay
        self.running = 0
        self.peak = 0
        self._lock = threading.Lock()

    def probe(self, target):
        with self._lock:
            self.running += 1
            self.peak = max(self.peak, self.running)
        time.sleep(self.delay)
        with self._lock:
            self.running -= 1
        return ProbeOutcome.succeeded(target, self.delay * 1000.0)


class TestProbeConcurrency:
    """Every probe of a tick runs at once, whatever the pool's starting size."""

    def _targets(self, count):
        return [Target.icmp(f"10.0.0.{i}") for i in range(1, count + 1)]

    def test_default_pool_fits_every_target(self):
        targets = self._targets(40)
        scheduler, *_ = make_scheduler(targets, {})

        assert scheduler.thread_pool.maxThreadCount() >= len(targets)

    def test_tick_commits_within_one_probe_duration(self):
        targets = self._targets(8)
        store = ResultStore(targets)
        pool = QThreadPool()
        pool.setMaxThreadCount(1)
        prober = SleepingProber(0.5)
        scheduler = MonitorScheduler(store, Broadcaster(store), prober, thread_pool=pool)
        scheduler.start()

        started = time.monotonic()
        scheduler._on_tick()
        assert wait_until(lambda: all(store.summary(t).total_tests == 1 for t in targets), timeout=3.0)
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert prober.peak == len(targets)
        assert pool.maxThreadCount() >= len(targets)
        scheduler.stop()

    def test_overlapping_ticks_do_not_queue(self):
        targets = self._targets(3)
        store = ResultStore(targets)
        pool = QThreadPool()
        pool.setMaxThreadCount(len(targets))
        prober = SleepingProber(0.4)
        scheduler = MonitorScheduler(store, Broadcaster(store), prober, thread_pool=pool)
        scheduler.start()

        scheduler._on_tick()
        scheduler._on_tick()

        assert wait_until(lambda: prober.peak == 2 * len(targets), timeout=1.0)
        assert wait_until(lambda: scheduler.get_stats()["in_flight"] == 0)
        scheduler.stop()


class TestStateSignal:
    def test_transitions_are_emitted(self):
        scheduler, *_ = make_scheduler([Target.icmp("10.0.0.1")], {})
        states = []
        scheduler.state_changed.connect(lambda state: states.append(state))

        scheduler.start()
        scheduler.stop()
        scheduler.stop()

        assert states == ["running", "stopped"]
