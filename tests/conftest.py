"""Shared fixtures and fakes for AzNetMon tests."""

import json
import threading
import time

import pytest
from PySide6.QtCore import QCoreApplication

from aznetmon.models import ProbeOutcome, Target


def wait_until(predicate, timeout=3.0, interval=0.01):
    """Poll predicate until it returns truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeChannel:
    """In-memory message channel recording every written message.

    Args:
        fail: Raise on every write (simulates a closed transport)
        gate: Event each write waits on before completing (simulates a slow viewer)
        on_send: Callback run inside each write, before it is recorded
    """

    def __init__(self, fail=False, gate=None, on_send=None):
        self.fail = fail
        self.gate = gate
        self.on_send = on_send
        self.sent = []
        self.closed = False
        self._lock = threading.Lock()

    def send_text(self, text):
        if self.fail:
            raise ConnectionError("connection reset by peer")
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.on_send is not None:
            self.on_send(text)
        with self._lock:
            self.sent.append(text)

    def close(self):
        self.closed = True

    def messages(self):
        with self._lock:
            return [json.loads(text) for text in self.sent]

    def count(self):
        with self._lock:
            return len(self.sent)


class ScriptedProber:
    """Prober returning fixed results per target key.

    ``results`` maps a target key to a latency in milliseconds (success) or
    an error string (failure). Unknown targets fail.
    """

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []
        self._lock = threading.Lock()

    def probe(self, target):
        with self._lock:
            self.calls.append(target)
        result = self.results.get(target.key, f"No scripted result for {target.key}")

        if isinstance(result, str):
            return ProbeOutcome.failed(target, result)
        return ProbeOutcome.succeeded(target, float(result))


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Create QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def icmp_target():
    return Target.icmp("10.0.0.1")


@pytest.fixture
def tcp_target():
    return Target.tcp("example.com", 443)
