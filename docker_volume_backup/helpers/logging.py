################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        logging.py
# @module:      docker_volume_backup.helpers.logging
# @description: Logger factory, level management and structured formatting.
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
# ==============================================================================
# Notes:
# - get_logger() is the only way modules obtain a logger
# - log_manager.configure() is called once by the CLI
# - extra={'container': ...} is rendered as a "[name]" prefix
################################################################################

"""
Logging setup for docker-volume-backup.

Modules log through the standard library with ``get_logger(__name__)``.
Context such as the container name or mount path is passed via ``extra``
and rendered by :class:`StructuredFormatter`.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from .constants import LOG_DATE_FORMAT, LOG_FORMAT

ROOT_LOGGER_NAME = "docker_volume_backup"

# Attributes every LogRecord has; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("x", logging.INFO, "x", 0, "x", None, None)).keys()
) | {"message", "asctime", "taskName"}


class Colors:
    """ANSI colour codes per log level."""

    RESET = "\033[0m"
    DEBUG = "\033[36m"
    INFO = "\033[32m"
    WARNING = "\033[33m"
    ERROR = "\033[31m"
    CRITICAL = "\033[1;31m"

    @classmethod
    def for_level(cls, levelname: str) -> str:
        return getattr(cls, levelname, "")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders ``extra`` context.

    ``container`` becomes a ``[name]`` prefix on the message, every other
    extra field is appended as ``key=value``.
    """

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = LOG_DATE_FORMAT, use_colors: bool = False):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        container = extras.pop("container", None)

        original_msg, original_args = record.msg, record.args
        message = record.getMessage()
        if container:
            message = f"[{container}] {message}"
        if extras:
            context = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
            message = f"{message} ({context})"

        record.msg, record.args = message, None
        try:
            formatted = super().format(record)
        finally:
            record.msg, record.args = original_msg, original_args

        if self.use_colors:
            color = Colors.for_level(record.levelname)
            if color:
                formatted = f"{color}{formatted}{Colors.RESET}"
        return formatted


class LogManager:
    """Owns the single handler attached to the package root logger."""

    def __init__(self):
        self._handler: Optional[logging.Handler] = None
        self.level = logging.INFO

    def configure(self, level: str = "INFO", stream: Optional[TextIO] = None) -> None:
        """
        Configure package logging.

        Args:
            level: Level name (case-insensitive), e.g. "info" or "DEBUG"
            stream: Output stream (default: stderr)

        Raises:
            ValueError: If the level name is unknown
        """
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")

        stream = stream or sys.stderr
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if self._handler is not None:
            root.removeHandler(self._handler)

        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter(use_colors=_is_tty(stream)))
        root.addHandler(handler)
        root.setLevel(numeric)
        root.propagate = False

        self._handler = handler
        self.level = numeric


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


log_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the package root logger."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(level: str = "INFO") -> None:
    """Shortcut for ``log_manager.configure``."""
    log_manager.configure(level=level)
