"""Command-line and environment configuration for AzNetMon."""

import argparse
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from aznetmon.models import Target

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_INTERVAL_S = 2.0
DEFAULT_SUMMARY_INTERVAL_S = 30.0

PROBER_CHOICES = ("auto", "icmp", "system", "fake")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigError(ValueError):
    """Fatal configuration problem detected at startup."""


@dataclass
class MonitorConfig:
    """Everything the monitor core and server need to start."""

    targets: list[Target] = field(default_factory=list)
    listen_host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    interval_s: float = DEFAULT_INTERVAL_S
    summary_interval_s: float = DEFAULT_SUMMARY_INTERVAL_S
    duration_s: float | None = None
    prober: str = "auto"

    @property
    def interval_ms(self) -> int:
        return max(1, int(self.interval_s * 1000))

    @property
    def summary_interval_ms(self) -> int:
        return max(1, int(self.summary_interval_s * 1000))


def parse_duration(text: str) -> float:
    """Parse a duration into seconds.

    Accepts plain seconds (``90``, ``1.5``) or unit suffixes that may be
    combined (``500ms``, ``30s``, ``5m``, ``1h30m``).

    Raises:
        ConfigError: If the text is not a positive duration
    """
    value = (text or "").strip().lower()
    if not value:
        raise ConfigError("Duration cannot be empty")

    try:
        seconds = float(value)
    except ValueError:
        parts = _DURATION_PART.findall(value)
        if not parts or "".join(number + unit for number, unit in parts) != value:
            raise ConfigError(f"Invalid duration '{text}', use e.g. 30s, 5m, 1h30m") from None
        seconds = sum(float(number) * _UNIT_SECONDS[unit] for number, unit in parts)

    if seconds <= 0:
        raise ConfigError(f"Duration must be positive, got '{text}'")
    return seconds


def parse_icmp_targets(text: str | None) -> list[Target]:
    """Split a comma-separated host list into ICMP targets."""
    if not text:
        return []
    return [Target.icmp(host.strip()) for host in text.split(",") if host.strip()]


def _split_host_port(entry: str) -> tuple[str, str] | None:
    if entry.startswith("["):
        host, _, rest = entry[1:].partition("]")
        if not rest.startswith(":"):
            return None
        return host, rest[1:]

    host, sep, port = entry.rpartition(":")
    if not sep or ":" in host:
        return None
    return host, port


def parse_tcp_targets(text: str | None) -> list[Target]:
    """Split a comma-separated ``host:port`` list into TCP targets.

    Malformed entries and out-of-range ports are skipped with a warning.
    """
    if not text:
        return []

    targets = []
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue

        parts = _split_host_port(entry)
        if parts is None or not parts[0]:
            logger.warning("Invalid TCP target format '%s', skipping. Format should be host:port", entry)
            continue

        host, port_str = parts
        try:
            port = int(port_str)
        except ValueError:
            port = 0
        if not 1 <= port <= 65535:
            logger.warning(
                "Invalid port number '%s' for target '%s', skipping. Port should be 1-65535",
                port_str,
                host,
            )
            continue

        targets.append(Target.tcp(host, port))

    return targets


def build_argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="aznetmon",
        description="Real-time ICMP and TCP network monitor with a live web dashboard",
        epilog=(
            "examples:\n"
            "  aznetmon --targets 8.8.8.8,1.1.1.1,google.com\n"
            "  aznetmon --tcp-targets google.com:80,example.com:443\n"
            "  aznetmon --targets 8.8.8.8 --tcp-targets google.com:80 --duration 10m"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("--targets", help="Comma-separated hosts to monitor with ICMP (env ICMP_TARGETS)")
    ap.add_argument("--tcp-targets", help="Comma-separated host:port list to monitor with TCP (env TCP_TARGETS)")
    ap.add_argument("--host", dest="listen_host", help="Address the web server binds to (env AZNETMON_HOST)")
    ap.add_argument("--port", type=int, help=f"Web server port (env AZNETMON_PORT, default {DEFAULT_PORT})")
    ap.add_argument("--interval", help="Probe interval (env AZNETMON_INTERVAL, default 2s)")
    ap.add_argument("--summary-interval", help="Summary interval (env AZNETMON_SUMMARY_INTERVAL, default 30s)")
    ap.add_argument("--duration", help="Stop probing after this long, e.g. 10m (env AZNETMON_DURATION)")
    ap.add_argument("--prober", choices=PROBER_CHOICES, help="ICMP probe strategy (env AZNETMON_PROBER)")
    return ap


def load_config(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> MonitorConfig:
    """Build the configuration from flags, falling back to environment variables.

    Raises:
        ConfigError: If no valid target remains or a value is invalid
    """
    env = os.environ if environ is None else environ
    args = build_argparser().parse_args(argv)

    icmp_text = args.targets or env.get("ICMP_TARGETS", "")
    tcp_text = args.tcp_targets or env.get("TCP_TARGETS", "")
    if not icmp_text and not tcp_text:
        raise ConfigError("No targets specified. Use --targets for ICMP or --tcp-targets for TCP.")

    # Same target listed twice is probed once
    targets = list(dict.fromkeys(parse_icmp_targets(icmp_text) + parse_tcp_targets(tcp_text)))
    if not targets:
        raise ConfigError("No valid targets remain after parsing")

    port_value = args.port if args.port is not None else env.get("AZNETMON_PORT", DEFAULT_PORT)
    try:
        port = int(port_value)
    except ValueError:
        raise ConfigError(f"Invalid port '{port_value}'") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"Port must be 1-65535, got {port}")

    interval_text = args.interval or env.get("AZNETMON_INTERVAL")
    summary_text = args.summary_interval or env.get("AZNETMON_SUMMARY_INTERVAL")
    duration_text = args.duration or env.get("AZNETMON_DURATION")

    prober = (args.prober or env.get("AZNETMON_PROBER") or "auto").lower()
    if prober not in PROBER_CHOICES:
        raise ConfigError(f"Unknown prober '{prober}', expected one of {', '.join(PROBER_CHOICES)}")

    return MonitorConfig(
        targets=targets,
        listen_host=args.listen_host or env.get("AZNETMON_HOST", "0.0.0.0"),
        port=port,
        interval_s=parse_duration(interval_text) if interval_text else DEFAULT_INTERVAL_S,
        summary_interval_s=parse_duration(summary_text) if summary_text else DEFAULT_SUMMARY_INTERVAL_S,
        duration_s=parse_duration(duration_text) if duration_text else None,
        prober=prober,
    )
