"""Logging setup on top of loguru."""

from __future__ import annotations

import sys

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {name}:{function} - {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <7} | {name}:{function}:{line} - {message}"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace loguru's default sink with a console sink and an optional file."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT, colorize=sys.stderr.isatty())
    if log_file:
        logger.add(log_file, level="DEBUG", format=FILE_FORMAT, encoding="utf-8")


__all__ = ["configure_logging", "logger"]
