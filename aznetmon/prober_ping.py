"""ICMP prober backed by the operating system's ping command.

Used when the process may not open ICMP sockets itself. Like the socket
probers, the reported duration is measured end-to-end from the start of the
attempt, so it includes process startup.
"""

import logging
import platform
import re
import subprocess
import time
from math import ceil

from aznetmon.models import ProbeOutcome, Target
from aznetmon.prober import PROBE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# "time<1ms" (Windows fast response)
_LESS_THAN_PATTERN = re.compile(r"time<(\d+)", re.IGNORECASE)
# "time=12.3 ms", "time = 12 ms", "time=15ms"
_LATENCY_PATTERN = re.compile(r"time\s*[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)


def parse_ping_latency_ms(output: str) -> float | None:
    """Parse latency value from ping command output.

    Handles Linux/macOS ``time=12.3 ms`` and Windows ``time=12ms`` or
    ``time<1ms``. Windows ``time<N`` is read as the midpoint N/2.

    Args:
        output: Raw ping command output

    Returns:
        Latency in milliseconds, or None if no latency was found

    Examples:
        >>> parse_ping_latency_ms("time=12.3 ms")
        12.3
        >>> parse_ping_latency_ms("time<1ms")
        0.5
        >>> parse_ping_latency_ms("Request timed out.")
    """
    if not output:
        return None

    match = _LESS_THAN_PATTERN.search(output)
    if match:
        return float(match.group(1)) / 2.0

    match = _LATENCY_PATTERN.search(output)
    if match:
        return float(match.group(1))

    return None


class SystemPingProber:
    """Runs ``ping`` once per probe with a bounded timeout.

    Parsing relies on the English keyword "time" in the output. On systems
    with localized ping output every probe is reported as failed.
    """

    def __init__(self, timeout_seconds: float = PROBE_TIMEOUT_SECONDS):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.timeout_seconds = timeout_seconds
        self.system = platform.system()

        logger.debug(
            "SystemPingProber initialized: timeout=%.1fs, system=%s",
            timeout_seconds,
            self.system,
        )

    def probe(self, target: Target) -> ProbeOutcome:
        host = target.host
        cmd = self._build_ping_command(host)

        start = time.perf_counter()
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds + 0.5,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            return ProbeOutcome.failed(target, f"Failed to receive ICMP reply from {host}: timed out")
        except OSError as e:
            logger.warning("Ping command unavailable: host=%s, error=%s", host, str(e))
            return ProbeOutcome.failed(target, f"Failed to run ping for {host}: {e}")

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip().splitlines()
            reason = detail[-1] if detail else f"exit status {result.returncode}"
            return ProbeOutcome.failed(target, f"Failed to receive ICMP reply from {host}: {reason}")

        duration = (time.perf_counter() - start) * 1000.0

        # Success needs a reply line, not just exit status 0
        if parse_ping_latency_ms(result.stdout) is None:
            logger.debug(
                "Parse failed: host=%s, output_preview=%s",
                host,
                result.stdout[:100] if result.stdout else "(empty)",
            )
            return ProbeOutcome.failed(target, f"Could not parse ping output for {host}")

        return ProbeOutcome.succeeded(target, duration)

    def _build_ping_command(self, host: str) -> list[str]:
        """Build the platform-specific ping command for one echo request."""
        if self.system == "Windows":
            return ["ping", "-n", "1", "-w", str(int(self.timeout_seconds * 1000)), host]

        if self.system == "Linux":
            return ["ping", "-c", "1", "-W", str(max(1, ceil(self.timeout_seconds))), host]

        # macOS -W has different semantics, so rely on the subprocess timeout
        return ["ping", "-c", "1", host]
