"""Probers for AzNetMon: one ICMP echo or TCP connect check per call."""

import logging
import os
import socket
import struct
import time
from typing import Protocol as TypingProtocol

from aznetmon.models import ProbeOutcome, Protocol, Target

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 3.0

ICMP_ECHO_REQUEST = 8
ICMP_PAYLOAD = b"aznetmon"


class Prober(TypingProtocol):
    """Protocol defining the interface for probers."""

    def probe(self, target: Target) -> ProbeOutcome:
        """Run one check against the target. Must never raise."""
        ...


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _describe(error: OSError) -> str:
    # socket timeouts can carry an empty message
    return str(error) or "timed out"


def icmp_checksum(data: bytes) -> int:
    """Compute the RFC 1071 internet checksum of data."""
    if len(data) % 2:
        data += b"\x00"

    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def build_echo_request(identifier: int, sequence: int, payload: bytes = ICMP_PAYLOAD) -> bytes:
    """Build an ICMP echo request packet (header + payload) with a valid checksum."""
    header = struct.pack("!BBHHH", ICMP_ECHO_REQUEST, 0, 0, identifier, sequence)
    checksum = icmp_checksum(header + payload)
    header = struct.pack("!BBHHH", ICMP_ECHO_REQUEST, 0, checksum, identifier, sequence)
    return header + payload


class IcmpProber:
    """Sends a single ICMP echo request and waits for any reply.

    Raw ICMP sockets need elevated privileges (root or CAP_NET_RAW). With
    ``privileged=False`` the prober uses an unprivileged datagram ICMP socket
    instead, which Linux allows when ``net.ipv4.ping_group_range`` covers the
    process group.
    """

    def __init__(self, timeout_seconds: float = PROBE_TIMEOUT_SECONDS, privileged: bool = True):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.timeout_seconds = timeout_seconds
        self.privileged = privileged
        self.identifier = os.getpid() & 0xFFFF

    def _open_socket(self) -> socket.socket:
        sock_type = socket.SOCK_RAW if self.privileged else socket.SOCK_DGRAM
        return socket.socket(socket.AF_INET, sock_type, socket.IPPROTO_ICMP)

    def check_available(self) -> None:
        """Open and close an ICMP socket, raising OSError if that is not permitted."""
        self._open_socket().close()

    def probe(self, target: Target) -> ProbeOutcome:
        host = target.host
        start = time.perf_counter()

        try:
            address = socket.gethostbyname(host)
        except OSError as e:
            return ProbeOutcome.failed(target, f"Failed to resolve {host}: {e}")

        try:
            sock = self._open_socket()
        except OSError as e:
            return ProbeOutcome.failed(target, f"Failed to create ICMP socket: {e}")

        with sock:
            sock.settimeout(self.timeout_seconds)
            packet = build_echo_request(self.identifier, 1)

            try:
                sock.sendto(packet, (address, 0))
            except OSError as e:
                return ProbeOutcome.failed(target, f"Failed to send ICMP packet: {e}")

            # Any reply within the timeout counts as success
            try:
                sock.recvfrom(1500)
            except OSError as e:
                return ProbeOutcome.failed(target, f"Failed to receive ICMP reply: {_describe(e)}")

        duration = _elapsed_ms(start)
        logger.debug("ICMP reply: host=%s, address=%s, duration=%.2fms", host, address, duration)
        return ProbeOutcome.succeeded(target, duration)


class TcpProber:
    """Attempts a TCP handshake and closes the connection immediately."""

    def __init__(self, timeout_seconds: float = PROBE_TIMEOUT_SECONDS):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds

    def probe(self, target: Target) -> ProbeOutcome:
        address = target.address
        start = time.perf_counter()

        try:
            conn = socket.create_connection((target.host, target.port), timeout=self.timeout_seconds)
        except OSError as e:
            return ProbeOutcome.failed(target, f"Failed TCP connection to {address}: {_describe(e)}")

        conn.close()
        duration = _elapsed_ms(start)
        logger.debug("TCP connect: address=%s, duration=%.2fms", address, duration)
        return ProbeOutcome.succeeded(target, duration)


class NetworkProber:
    """Dispatches each target to the prober for its protocol.

    Any exception escaping a protocol prober is logged and turned into a
    failed outcome, so callers never see one.
    """

    def __init__(self, icmp: Prober | None = None, tcp: Prober | None = None):
        self.icmp = icmp if icmp is not None else IcmpProber()
        self.tcp = tcp if tcp is not None else TcpProber()
        self._probers = {Protocol.ICMP: self.icmp, Protocol.TCP: self.tcp}

    def probe(self, target: Target) -> ProbeOutcome:
        try:
            return self._probers[target.protocol].probe(target)
        except Exception as e:
            logger.exception("Probe error: target=%s, error=%s", target.key, str(e))
            return ProbeOutcome.failed(target, f"Probe error for {target.address}: {e}")
