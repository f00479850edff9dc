"""Data models for AzNetMon targets, outcomes and summaries."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Protocol(str, Enum):
    """Supported probe protocols."""

    ICMP = "ICMP"
    TCP = "TCP"


@dataclass(frozen=True)
class Target:
    """A single probe target, immutable for the process lifetime."""

    host: str
    protocol: Protocol = Protocol.ICMP
    port: int | None = None

    def __post_init__(self):
        """Validate host and port against the protocol."""
        if not self.host or not self.host.strip():
            raise ValueError("Target host cannot be empty")

        object.__setattr__(self, "protocol", Protocol(self.protocol))

        if self.protocol == Protocol.TCP:
            if self.port is None or not 1 <= self.port <= 65535:
                raise ValueError(f"TCP target {self.host} needs a port in 1-65535, got {self.port}")
        else:
            # Port is meaningless for ICMP
            object.__setattr__(self, "port", None)

    @classmethod
    def icmp(cls, host: str) -> "Target":
        return cls(host=host, protocol=Protocol.ICMP)

    @classmethod
    def tcp(cls, host: str, port: int) -> "Target":
        return cls(host=host, protocol=Protocol.TCP, port=port)

    @property
    def key(self) -> str:
        """Stable string identity, e.g. ``8.8.8.8`` or ``example.com-tcp-443``."""
        if self.protocol == Protocol.TCP:
            return f"{self.host}-tcp-{self.port}"
        return self.host

    @property
    def address(self) -> str:
        """Human-readable address (``host`` or ``host:port``)."""
        if self.protocol == Protocol.TCP:
            return f"{self.host}:{self.port}"
        return self.host


@dataclass(frozen=True)
class ProbeOutcome:
    """The immutable result of one probe attempt."""

    target: Target
    success: bool
    duration_ms: float = 0.0
    error: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        """Ensure consistency between success, duration_ms and error fields."""
        if self.success:
            object.__setattr__(self, "error", None)
        else:
            # Duration is only meaningful on success
            object.__setattr__(self, "duration_ms", 0.0)
            if not self.error:
                object.__setattr__(self, "error", "unknown error")

    @classmethod
    def succeeded(cls, target: Target, duration_ms: float) -> "ProbeOutcome":
        return cls(target=target, success=True, duration_ms=duration_ms)

    @classmethod
    def failed(cls, target: Target, error: str) -> "ProbeOutcome":
        return cls(target=target, success=False, error=error)

    def to_message(self) -> dict:
        """Build the wire representation sent to viewers and the query endpoint."""
        message = {
            "target": self.target.host,
            "protocol": self.target.protocol.value,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.target.port is not None:
            message["port"] = self.target.port
        if self.error:
            message["error"] = self.error
        return message


@dataclass
class TargetSummary:
    """Accumulated statistics for one target across all probes so far.

    Instances held by the ResultStore are mutated only under its lock;
    everything handed out is a copy.
    """

    target: Target
    total_tests: int = 0
    successful: int = 0
    failed: int = 0
    packet_loss_percent: float = 0.0
    avg_latency_ms: float = 0.0
    last_error: str | None = None

    def apply(self, outcome: ProbeOutcome) -> None:
        """Fold one outcome into the running totals."""
        self.total_tests += 1

        if outcome.success:
            self.successful += 1
            # Incremental mean over successes only
            n = self.successful
            self.avg_latency_ms = (self.avg_latency_ms * (n - 1) + outcome.duration_ms) / n
        else:
            self.failed += 1
            self.last_error = outcome.error

        self.packet_loss_percent = self.failed / self.total_tests * 100.0

    def copy(self) -> "TargetSummary":
        return replace(self)

    def to_dict(self) -> dict:
        data = {
            "target": self.target.key,
            "total_tests": self.total_tests,
            "successful": self.successful,
            "failed": self.failed,
            "packet_loss_percent": self.packet_loss_percent,
            "avg_latency_ms": self.avg_latency_ms,
        }
        if self.last_error:
            data["last_error"] = self.last_error
        return data


@dataclass(frozen=True)
class DashboardSummary:
    """Point-in-time export of every target's summary."""

    timestamp: datetime
    total_targets: int
    online_targets: int
    offline_targets: int
    avg_latency_ms: float
    target_stats: tuple[TargetSummary, ...] = ()

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_targets": self.total_targets,
            "online_targets": self.online_targets,
            "offline_targets": self.offline_targets,
            "avg_latency_ms": self.avg_latency_ms,
            "target_stats": [stats.to_dict() for stats in self.target_stats],
        }

    def to_message(self) -> dict:
        """Wrap the summary in the envelope viewers receive on the live stream."""
        return {"type": "summary", "summary": self.to_dict()}
