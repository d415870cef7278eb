"""Logging setup for the WordPress image pipeline.

Every package logger writes to stdout under ``wp-image-pipeline`` and does not
propagate. ``LOG_LEVEL`` and ``LOG_FORMAT`` override the defaults.
"""

import os
import sys
import logging
from typing import Optional

ROOT_LOGGER_NAME = "wp-image-pipeline"

LOG_FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_formatter(format_type: str) -> logging.Formatter:
    chosen = os.getenv("LOG_FORMAT", format_type).lower()
    if chosen == "structured":
        return logging.Formatter(LOG_FORMATS["structured"], datefmt="%Y-%m-%d %H:%M:%S")
    return logging.Formatter(LOG_FORMATS["simple"])


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Return the named logger with a stdout handler attached once.

    Args:
        name: Logger name (defaults to "wp-image-pipeline")
        level: Level name; falls back to LOG_LEVEL, then INFO
        format_type: "structured" or "simple"; LOG_FORMAT wins when set
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_build_formatter(format_type))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Package logger for ``name``.

    Names without the package prefix are nested under it, so
    ``get_logger("resolver")`` returns ``wp-image-pipeline.resolver``.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return setup_logger(name)


def enable_debug_logging() -> None:
    """Switch the package loggers (and the root logger) to DEBUG."""
    logging.getLogger().setLevel(logging.DEBUG)
    for name in list(logging.Logger.manager.loggerDict):
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            logging.getLogger(name).setLevel(logging.DEBUG)


logger = setup_logger()
