"""Diagnostic event sinks and logging setup.

Analysis components never log directly.  They call ``sink.emit(event, **fields)``
on an injected sink so the numeric code stays a pure function of its inputs.
The default :class:`LoggingSink` forwards events to :mod:`logging`.
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Protocol


class EventSink(Protocol):
    def emit(self, event: str, **fields: Any) -> None: ...


class LoggingSink:
    """Forward events to a :mod:`logging` logger at DEBUG level."""

    def __init__(self, name: str = "sleephrv", level: int = logging.DEBUG) -> None:
        self.logger = logging.getLogger(name)
        self.level = level

    def emit(self, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        detail = " ".join(f"{k}={_fmt(v)}" for k, v in fields.items())
        self.logger.log(self.level, f"{event} {detail}".rstrip())


class NullSink:
    """Discard every event."""

    def emit(self, event: str, **fields: Any) -> None:
        return None


class CollectingSink:
    """Keep events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def last(self, event: str) -> dict[str, Any] | None:
        """Fields of the most recent *event*, or None if never emitted."""
        for name, fields in reversed(self.events):
            if name == event:
                return fields
        return None


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def setup_logging(*, verbose: bool = False) -> None:
    """Configure console logging for the command line."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": "DEBUG" if verbose else "WARNING",
                    "formatter": "console",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {
                "level": "DEBUG" if verbose else "WARNING",
                "handlers": ["console"],
            },
        }
    )
