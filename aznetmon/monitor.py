"""The Monitor aggregate: store, broadcaster and scheduler wired together."""

import logging

from PySide6.QtCore import QObject

from aznetmon.broadcaster import Broadcaster
from aznetmon.config import MonitorConfig
from aznetmon.models import DashboardSummary, Target
from aznetmon.prober import Prober
from aznetmon.scheduler import MonitorScheduler
from aznetmon.store import ResultStore, StoreSnapshot
from aznetmon.subscribers import MessageChannel, SubscriberHandle, SubscriptionRegistry

logger = logging.getLogger(__name__)


class Monitor(QObject):
    """Owns all runtime state of one monitoring process.

    Built once at startup and passed by reference to the transport layer.
    Every configured target gets its summary here, before the first tick.
    """

    def __init__(
        self,
        targets: list[Target],
        prober: Prober,
        interval_ms: int = 2000,
        summary_interval_ms: int = 30000,
        duration_s: float | None = None,
        queue_max: int = 64,
        parent=None,
    ):
        super().__init__(parent)

        if not targets:
            raise ValueError("Monitor needs at least one target")

        self.store = ResultStore(targets)
        self.registry = SubscriptionRegistry()
        self.broadcaster = Broadcaster(self.store, self.registry, queue_max=queue_max)
        self.scheduler = MonitorScheduler(
            self.store,
            self.broadcaster,
            prober,
            interval_ms=interval_ms,
            summary_interval_ms=summary_interval_ms,
            duration_s=duration_s,
            parent=self,
        )

    @classmethod
    def from_config(cls, config: MonitorConfig, prober: Prober, parent=None) -> "Monitor":
        return cls(
            config.targets,
            prober,
            interval_ms=config.interval_ms,
            summary_interval_ms=config.summary_interval_ms,
            duration_s=config.duration_s,
            parent=parent,
        )

    @property
    def targets(self) -> list[Target]:
        return self.store.targets

    def start(self) -> None:
        self.broadcaster.start()
        self.scheduler.start()

    def stop(self, timeout: float = 3.0) -> None:
        """Stop scheduling, drain the dispatcher and wait for running workers."""
        self.scheduler.stop()
        self.scheduler.thread_pool.waitForDone(int(timeout * 1000))
        self.broadcaster.stop(timeout)

    def subscribe(self, channel: MessageChannel, name: str | None = None) -> SubscriberHandle:
        return self.broadcaster.subscribe(channel, name)

    def unsubscribe(self, handle: SubscriberHandle) -> None:
        self.broadcaster.unsubscribe(handle)

    def snapshot(self) -> StoreSnapshot:
        return self.store.snapshot()

    def results(self) -> dict[str, dict]:
        """Latest outcome per target key, ready for JSON encoding."""
        return self.store.snapshot().results()

    def summary(self) -> DashboardSummary:
        return self.store.dashboard_summary()

    def get_stats(self) -> dict:
        return {
            "scheduler": self.scheduler.get_stats(),
            "broadcaster": self.broadcaster.get_stats(),
        }
