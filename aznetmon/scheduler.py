"""Probe scheduler: fixed-interval ticks, periodic summaries, optional deadline."""

import logging
import threading
import time
from enum import Enum
from typing import Callable

from PySide6.QtCore import QObject, QThread, QThreadPool, QTimer, Signal

from aznetmon.broadcaster import Broadcaster
from aznetmon.models import ProbeOutcome, Target
from aznetmon.prober import Prober
from aznetmon.store import ResultStore
from aznetmon.workers import ProbeWorker

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class MonitorScheduler(QObject):
    """Schedules probes for every configured target on a fixed tick.

    Key features:
    - One concurrent probe per target per tick, on a dedicated thread pool
    - Each probe commits its own outcome to the store and publishes it
    - Independent summary timer publishing a DashboardSummary
    - Optional run duration: the first tick at or past the deadline stops
      the scheduler instead of probing

    The tick itself never waits for probes: a probe slower than the interval
    simply overlaps the next tick's probe of the same target. The pool grows
    so that every launched probe gets a thread at once and never queues
    behind another probe.

    Thread-safe: timers fire on the Qt thread that owns the scheduler;
    probe completions run on pool threads and only touch the store, the
    broadcaster and the in-flight counter.
    """

    stopped = Signal()
    state_changed = Signal(str)

    def __init__(
        self,
        store: ResultStore,
        broadcaster: Broadcaster,
        prober: Prober,
        interval_ms: int = 2000,
        summary_interval_ms: int = 30000,
        duration_s: float | None = None,
        thread_pool: QThreadPool | None = None,
        clock: Callable[[], float] = time.monotonic,
        parent=None,
    ):
        """Initialize the scheduler.

        Args:
            store: Result store receiving every outcome
            broadcaster: Event sink for outcome and summary messages
            prober: Prober used for every target
            interval_ms: Probe tick interval in milliseconds
            summary_interval_ms: Summary publication interval in milliseconds
            duration_s: Total run duration in seconds, or None to run forever
            thread_pool: Pool for probe workers (a dedicated pool by default)
            clock: Monotonic clock in seconds, replaceable in tests
            parent: Qt parent object
        """
        super().__init__(parent)

        if interval_ms <= 0 or summary_interval_ms <= 0:
            raise ValueError("Intervals must be positive")
        if duration_s is not None and duration_s <= 0:
            raise ValueError("duration_s must be positive")

        self.store = store
        self.broadcaster = broadcaster
        self.prober = prober
        self.interval_ms = interval_ms
        self.summary_interval_ms = summary_interval_ms
        self.duration_s = duration_s
        self._clock = clock

        if thread_pool is None:
            thread_pool = QThreadPool()
            thread_pool.setMaxThreadCount(max(len(store.targets), QThread.idealThreadCount()))
        self.thread_pool = thread_pool

        self.state = SchedulerState.IDLE
        self.deadline: float | None = None

        # Counters touched from pool threads
        self._counter_lock = threading.Lock()
        self._in_flight = 0
        self._launched = 0
        self._ticks = 0

        self.timer = QTimer(self)
        self.timer.timeout.connect(self._on_tick)

        self.summary_timer = QTimer(self)
        self.summary_timer.timeout.connect(self._on_summary_tick)

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    def start(self) -> None:
        """Start ticking. Only valid from the idle state."""
        if self.state != SchedulerState.IDLE:
            logger.debug("Start ignored: state=%s", self.state.value)
            return

        if self.duration_s is not None:
            self.deadline = self._clock() + self.duration_s

        self.timer.start(self.interval_ms)
        self.summary_timer.start(self.summary_interval_ms)
        self._set_state(SchedulerState.RUNNING)

        logger.info(
            "Monitoring started: %d targets, interval=%dms, summary=%dms, duration=%s",
            len(self.store.targets),
            self.interval_ms,
            self.summary_interval_ms,
            f"{self.duration_s}s" if self.duration_s is not None else "unlimited",
        )

    def stop(self) -> None:
        """Stop ticking. In-flight probes finish and still commit their outcomes."""
        if self.state == SchedulerState.STOPPED:
            return

        self.timer.stop()
        self.summary_timer.stop()
        self._set_state(SchedulerState.STOPPED)
        logger.info("Monitoring stopped after %d ticks", self._ticks)
        self.stopped.emit()

    def deadline_passed(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def get_stats(self) -> dict:
        with self._counter_lock:
            return {
                "state": self.state.value,
                "targets": len(self.store.targets),
                "ticks": self._ticks,
                "launched": self._launched,
                "in_flight": self._in_flight,
                "interval_ms": self.interval_ms,
            }

    def _set_state(self, state: SchedulerState) -> None:
        self.state = state
        self.state_changed.emit(state.value)

    def _on_tick(self) -> None:
        """Handle timer tick - launch one probe per target."""
        if self.state != SchedulerState.RUNNING:
            return

        if self.deadline_passed():
            logger.info("Run duration of %ss elapsed", self.duration_s)
            self.stop()
            return

        with self._counter_lock:
            self._ticks += 1

        for target in self.store.targets:
            self._launch(target)

        logger.debug("Tick %d: launched %d probes (in-flight: %d)", self._ticks, len(self.store.targets), self._in_flight)

    def _launch(self, target: Target) -> None:
        with self._counter_lock:
            self._in_flight += 1
            self._launched += 1
            in_flight = self._in_flight

        if in_flight > self.thread_pool.maxThreadCount():
            self.thread_pool.setMaxThreadCount(in_flight)
            logger.debug("Probe pool grown to %d threads", in_flight)

        worker = ProbeWorker(self.prober, target, self._on_outcome, self._on_probe_finished)
        self.thread_pool.start(worker)

    def _on_outcome(self, outcome: ProbeOutcome) -> None:
        """Commit and publish one outcome (runs on the probe's pool thread)."""
        self.store.record_outcome(outcome)
        self.broadcaster.publish(outcome.to_message())

    def _on_probe_finished(self, target: Target) -> None:
        with self._counter_lock:
            self._in_flight = max(0, self._in_flight - 1)

    def _on_summary_tick(self) -> None:
        if self.state != SchedulerState.RUNNING:
            return
        self.publish_summary()

    def publish_summary(self) -> None:
        """Build a DashboardSummary from a store snapshot and publish it."""
        summary = self.store.dashboard_summary()
        self.broadcaster.publish(summary.to_message())
        logger.info(
            "Summary: %d targets, %d online, %d offline, avg latency %.1fms",
            summary.total_targets,
            summary.online_targets,
            summary.offline_targets,
            summary.avg_latency_ms,
        )
