"""Shared result store: latest outcome and rolling summary per target."""

import logging
import threading
from dataclasses import dataclass

from aznetmon.models import DashboardSummary, ProbeOutcome, Target, TargetSummary, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    """Consistent copy of the store taken under its lock.

    ``latest`` only holds targets that have produced at least one outcome;
    ``summaries`` holds every configured target in configuration order.
    """

    latest: dict[str, ProbeOutcome]
    summaries: tuple[TargetSummary, ...]

    def results(self) -> dict[str, dict]:
        """Latest outcome per target key, in wire format."""
        return {key: outcome.to_message() for key, outcome in self.latest.items()}

    def to_dashboard_summary(self) -> DashboardSummary:
        online = []
        for summary in self.summaries:
            outcome = self.latest.get(summary.target.key)
            if outcome is not None and outcome.success:
                online.append(summary)

        total = len(self.summaries)
        avg_latency = sum(s.avg_latency_ms for s in online) / len(online) if online else 0.0

        return DashboardSummary(
            timestamp=utc_now(),
            total_targets=total,
            online_targets=len(online),
            offline_targets=total - len(online),
            avg_latency_ms=avg_latency,
            target_stats=self.summaries,
        )


class ResultStore:
    """Table mapping each configured target to its latest outcome and summary.

    A single lock guards both maps. Every update touches them inside one
    critical section, so readers never see ``total_tests`` out of step with
    ``successful + failed``. Nothing is serialized or sent while the lock is
    held.
    """

    def __init__(self, targets: list[Target]):
        self._lock = threading.Lock()
        self._targets = list(dict.fromkeys(targets))
        self._latest: dict[str, ProbeOutcome] = {}
        self._summaries: dict[str, TargetSummary] = {
            target.key: TargetSummary(target=target) for target in self._targets
        }
        logger.debug("ResultStore created: %d targets", len(self._targets))

    @property
    def targets(self) -> list[Target]:
        return list(self._targets)

    def record_outcome(self, outcome: ProbeOutcome) -> TargetSummary:
        """Store an outcome as the target's latest and fold it into its summary.

        Args:
            outcome: Result of one probe against a configured target

        Returns:
            Copy of the target's summary after the update

        Raises:
            KeyError: If the outcome's target is not configured
        """
        key = outcome.target.key
        with self._lock:
            summary = self._summaries.get(key)
            if summary is None:
                raise KeyError(f"Unknown target: {key}")
            self._latest[key] = outcome
            summary.apply(outcome)
            updated = summary.copy()

        logger.debug(
            "Outcome recorded: target=%s, success=%s, total=%d, loss=%.1f%%",
            key,
            outcome.success,
            updated.total_tests,
            updated.packet_loss_percent,
        )
        return updated

    def latest(self, target: Target) -> ProbeOutcome | None:
        with self._lock:
            return self._latest.get(target.key)

    def summary(self, target: Target) -> TargetSummary:
        """Return a copy of one target's summary.

        Raises:
            KeyError: If the target is not configured
        """
        with self._lock:
            return self._summaries[target.key].copy()

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            latest = dict(self._latest)
            summaries = tuple(self._summaries[t.key].copy() for t in self._targets)
        return StoreSnapshot(latest=latest, summaries=summaries)

    def dashboard_summary(self) -> DashboardSummary:
        return self.snapshot().to_dashboard_summary()
