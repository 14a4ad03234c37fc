"""Logging for winmd_tables.

The library only emits records through :func:`get_logger`. A ``NullHandler`` on
the package logger keeps it silent until a host tool (a generator or a
dump script) calls :func:`configure_logging`.
"""

from __future__ import annotations

import logging
from typing import TextIO

_LOGGER_NAME = "winmd_tables"
_CONSOLE_FORMAT = "[winmd] %(levelname)s %(name)s: %(message)s"

logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the winmd_tables hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """Route library records to ``stream`` (stderr when omitted).

    Args:
        verbose: Include the per-attribute and per-table debug records.
        stream: Text stream for the console handler.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Exactly one console handler, however often this runs
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console = logging.StreamHandler(stream)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)
    return logger


__all__ = ["configure_logging", "get_logger"]
