"""Logging configuration for the NetProbe daemon."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(value: str | None) -> int:
    """Map a level name to a logging constant, INFO when unknown."""
    return _LEVELS.get((value or "INFO").strip().upper(), logging.INFO)


def configure_logging(level: str | None = None) -> None:
    """Configure process-wide logging to stderr.

    Respects the NETPROBE_LOG_LEVEL environment variable (default: INFO)
    unless ``level`` is given. Unknown level names fall back to INFO.

    Examples:
        # Debug level for troubleshooting probe classification
        $ NETPROBE_LOG_LEVEL=DEBUG python -m netprobe

        # Only failures
        $ NETPROBE_LOG_LEVEL=WARNING python -m netprobe
    """
    log_level = resolve_log_level(level if level is not None else os.environ.get("NETPROBE_LOG_LEVEL"))

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,  # Override any existing configuration
    )

    logging.getLogger(__name__).debug("Logging configured: level=%s", logging.getLevelName(log_level))
