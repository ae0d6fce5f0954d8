"""
Logging utilities for SheetBridge.

All service loggers live under the `sheetbridge` namespace. Only the package
logger owns a handler; module loggers stay at NOTSET and propagate to it, so
`configure_logging` changes the level of every sheetbridge logger at once.
"""

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "sheetbridge"


def _to_level(level: Union[str, int, None], default: int = logging.INFO) -> int:
    if level is None:
        return default
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), default)


def _package_logger() -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)

    # Don't add handlers if already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        # The package handler is the only output; the root logger would duplicate it.
        logger.propagate = False

    return logger


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a logger in the sheetbridge hierarchy.

    Args:
        name: Logger name (typically __name__)
        level: Optional per-logger override; by default the package level applies
    """
    _package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(_to_level(level))
    return logger


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Set the level of the sheetbridge package logger and its handlers (DEBUG, INFO, ...)."""
    log_level = _to_level(level)
    package = _package_logger()
    package.setLevel(log_level)
    for handler in package.handlers:
        handler.setLevel(log_level)


def get_cache_logger(name: str = "cache") -> logging.Logger:
    """Get the response cache logger (eviction events at DEBUG)."""
    return get_logger(f"{PACKAGE_LOGGER}.{name}")
