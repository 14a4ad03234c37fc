"""Progress events reported by a binding generator built on this library.

The decoding core never raises events; generators notify an
``EventListener`` while they write output.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from winmd_tables.logging import get_logger


@dataclass(frozen=True)
class SourceFileGenerated:
    path: Path


@dataclass(frozen=True)
class DirectoryCreated:
    path: Path


@dataclass(frozen=True)
class FileDeleted:
    path: Path


@dataclass(frozen=True)
class DirectoryDeleted:
    path: Path


@dataclass(frozen=True)
class InvalidArgument:
    """A generator option was rejected."""

    name: str
    value: str
    reason: str


Event = Union[SourceFileGenerated, DirectoryCreated, FileDeleted, DirectoryDeleted, InvalidArgument]


class EventListener:
    """Receives generator events."""

    def on_event(self, event: Event) -> None:
        raise NotImplementedError


class LoggingEventListener(EventListener):
    """Writes events to the winmd_tables logger.

    File system events are logged at debug level, invalid arguments as errors.
    """

    def __init__(self, name: str = "events") -> None:
        self.logger = get_logger(name)

    def on_event(self, event: Event) -> None:
        if isinstance(event, SourceFileGenerated):
            self.logger.debug("Generated source file %s", event.path)
        elif isinstance(event, DirectoryCreated):
            self.logger.debug("Created directory %s", event.path)
        elif isinstance(event, FileDeleted):
            self.logger.debug("Deleted file %s", event.path)
        elif isinstance(event, DirectoryDeleted):
            self.logger.debug("Deleted directory %s", event.path)
        elif isinstance(event, InvalidArgument):
            self.logger.error("Invalid value '%s' for argument %s: %s", event.value, event.name, event.reason)
        else:
            raise TypeError(f"Unknown event: {event!r}")
