"""Entry point for the AzNetMon service."""

import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from aznetmon.config import ConfigError, load_config
from aznetmon.fake_prober import FakeProber
from aznetmon.logging_config import configure_logging
from aznetmon.monitor import Monitor
from aznetmon.prober import IcmpProber, NetworkProber, Prober, TcpProber
from aznetmon.prober_ping import SystemPingProber
from aznetmon.server import ServerThread, create_app

logger = logging.getLogger(__name__)


def select_prober(mode: str = "auto") -> Prober:
    """Build the prober for the requested ICMP strategy.

    ``auto`` prefers a raw ICMP socket, then an unprivileged ICMP datagram
    socket, then the system ping command.
    """
    if mode == "fake":
        logger.info("Using FakeProber (simulated outcomes)")
        return FakeProber()

    if mode == "icmp":
        return NetworkProber(icmp=IcmpProber(), tcp=TcpProber())

    if mode == "system":
        return NetworkProber(icmp=SystemPingProber(), tcp=TcpProber())

    icmp = None
    for privileged in (True, False):
        candidate = IcmpProber(privileged=privileged)
        try:
            candidate.check_available()
        except OSError as e:
            logger.debug("ICMP socket unavailable (privileged=%s): %s", privileged, e)
            continue
        icmp = candidate
        logger.info("Using ICMP sockets (privileged=%s)", privileged)
        break

    if icmp is None:
        logger.warning("Insufficient permissions for ICMP sockets, falling back to the ping command")
        icmp = SystemPingProber()

    return NetworkProber(icmp=icmp, tcp=TcpProber())


def main(argv=None) -> int:
    """Main entry point for the AzNetMon service."""
    configure_logging()

    try:
        config = load_config(argv)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    monitor = Monitor.from_config(config, select_prober(config.prober))
    server = ServerThread(create_app(monitor), config.listen_host, config.port)

    monitor.scheduler.state_changed.connect(lambda state: logger.info("Scheduler state: %s", state))
    # A configured run duration ends the process
    monitor.scheduler.stopped.connect(app.quit)

    # Let the interpreter handle Ctrl+C while Qt owns the main loop
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    signal.signal(signal.SIGTERM, lambda *_: app.quit())
    wakeup = QTimer()
    wakeup.timeout.connect(lambda: None)
    wakeup.start(200)

    logger.info("Starting AzNetMon on %s:%d", config.listen_host, config.port)
    for target in monitor.targets:
        logger.info("Monitoring target: %s (%s)", target.address, target.protocol.value)

    server.start()
    monitor.start()
    try:
        return app.exec()
    finally:
        wakeup.stop()
        monitor.stop()
        server.stop()
        logger.info("AzNetMon stopped")


if __name__ == "__main__":
    sys.exit(main())
