"""Logging setup for the StudioShot engine."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that report every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | int = "INFO", stream: TextIO | None = None) -> logging.Logger:
    """Attach one stream handler to the ``studioshot`` logger.

    Module loggers are named ``studioshot.<area>`` and propagate to it.
    Calling this again only changes the level.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR) or number.
        stream: Output stream, stdout by default.

    Returns:
        The ``studioshot`` logger.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    engine_logger = logging.getLogger("studioshot")
    engine_logger.setLevel(level)

    if not engine_logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        engine_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return engine_logger
