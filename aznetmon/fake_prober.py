"""Fake prober for AzNetMon simulation and testing."""

import random
import threading

from aznetmon.models import ProbeOutcome, Target


class FakeProber:
    """Generates simulated probe outcomes without touching the network."""

    def __init__(self, seed: int | None = None):
        """Initialize with optional random seed for deterministic behavior."""
        # Probes run on several pool threads at once
        self._random = random.Random(seed)
        self._lock = threading.Lock()

        self.base_latency = 25.0
        self.latency_variance = 5.0
        self.spike_probability = 0.05
        self.spike_multiplier = 3.0
        self.loss_probability = 0.02

    def probe(self, target: Target) -> ProbeOutcome:
        with self._lock:
            is_lost = self._random.random() < self.loss_probability
            is_spike = self._random.random() < self.spike_probability
            jitter = self._random.gauss(0, self.latency_variance)

        if is_lost:
            return ProbeOutcome.failed(target, f"Simulated timeout probing {target.address}")

        latency = self.base_latency * (self.spike_multiplier if is_spike else 1.0) + jitter
        return ProbeOutcome.succeeded(target, round(max(0.1, latency), 2))
