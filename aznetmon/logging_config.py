"""Logging configuration for AzNetMon."""

import logging
import os
import sys

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(level: str | None = None) -> int:
    """Configure application-wide logging.

    The level comes from ``level`` or the AZNETMON_LOG_LEVEL environment
    variable (default INFO; unknown names fall back to INFO). Logs go to
    stderr with timestamp, logger name, level and message. Uvicorn's
    per-request access log is only shown at DEBUG.

    Examples:
        $ AZNETMON_LOG_LEVEL=DEBUG python -m aznetmon --targets 8.8.8.8

    Returns:
        The numeric level applied to the root logger
    """
    level_name = (level or os.environ.get("AZNETMON_LOG_LEVEL", "INFO")).upper()
    log_level = LOG_LEVELS.get(level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(
        logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    )

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s", logging.getLevelName(log_level))
    return log_level
