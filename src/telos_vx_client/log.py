"""Console logging driven by a colon-separated watcher spec.

The library logs through the standard ``logging`` module and stays silent by
default. ``configure_watchers("error:warning:in:out")`` switches on the
requested categories and installs a colored console handler:

- ``error`` / ``warning``: records from the ``telos_vx_client`` loggers
- ``input`` / ``output``: raw wire traces, one record per line
- ``trace``: attach the call stack to error records
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import TextIO

import click

ROOT_LOGGER = "telos_vx_client"
INPUT_LOGGER = f"{ROOT_LOGGER}.wire.input"
OUTPUT_LOGGER = f"{ROOT_LOGGER}.wire.output"

_ALIASES: dict[str, tuple[str, ...]] = {
    "error": ("error", "errors", "err"),
    "warning": ("warning", "warnings", "warn"),
    "input": ("input", "in", "request", "req"),
    "output": ("output", "out", "response", "res"),
    "trace": ("trace", "stack", "stack trace", "stacktrace"),
}


@dataclass
class Watchers:
    """Which log categories are switched on."""

    error: bool = False
    warning: bool = False
    input: bool = False
    output: bool = False
    trace: bool = False

    @classmethod
    def parse(cls, spec: str | None) -> Watchers:
        """Parse a watcher spec such as ``"error:warn:in:out:trace"``.

        Names are trimmed and case-insensitive; unknown names are ignored.
        """
        watchers = cls()
        if not isinstance(spec, str) or not spec:
            return watchers

        names = {item.strip().lower() for item in spec.split(":")}
        names.discard("")
        for attr, aliases in _ALIASES.items():
            if names.intersection(aliases):
                setattr(watchers, attr, True)
        return watchers

    def any(self) -> bool:
        return self.error or self.warning or self.input or self.output


class ConsoleFormatter(logging.Formatter):
    """Prefix each record with a colored, right-aligned label.

    Exceptions render as a one-line summary, or as a full traceback when
    ``trace`` is on.
    """

    def __init__(self, trace: bool = False):
        super().__init__()
        self.trace = trace

    def format(self, record: logging.LogRecord) -> str:
        if record.name == INPUT_LOGGER:
            label = click.style("⬅        INPUT: ", fg="green")
        elif record.name == OUTPUT_LOGGER:
            label = click.style("➡       OUTPUT: ", fg="green")
        elif record.levelno >= logging.ERROR:
            label = click.style("✘        ERROR: ", fg="red")
        else:
            label = click.style("!      WARNING: ", fg="yellow")

        text = label + record.getMessage()
        if record.exc_info and record.exc_info[1] is not None:
            error = record.exc_info[1]
            if self.trace:
                text += "\n" + click.style("!    EXCEPTION: ", fg="magenta")
                text += self.formatException(record.exc_info)
            else:
                text += f" ({type(error).__name__}: {error})"
        if record.stack_info:
            trace = self.formatStack(record.stack_info)
            text += "\n" + click.style("!  STACK TRACE: ", fg="magenta") + trace.strip()
        return text


class _WatcherFilter(logging.Filter):
    """Let through only the categories that are switched on."""

    def __init__(self, watchers: Watchers):
        super().__init__()
        self.watchers = watchers

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == INPUT_LOGGER:
            return self.watchers.input
        if record.name == OUTPUT_LOGGER:
            return self.watchers.output
        if record.levelno >= logging.ERROR:
            return self.watchers.error
        if record.levelno >= logging.WARNING:
            return self.watchers.warning
        return False


_handler: logging.Handler | None = None
_current = Watchers()


def configure_watchers(spec: str | None, stream: TextIO | None = None) -> Watchers:
    """Install (or replace) the console handler for a watcher spec.

    An empty or unrecognised spec leaves logging untouched and returns the
    all-off watchers.
    """
    global _handler, _current

    watchers = Watchers.parse(spec)
    if not watchers.any():
        return watchers

    root = logging.getLogger(ROOT_LOGGER)
    if _handler is not None:
        root.removeHandler(_handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ConsoleFormatter(trace=watchers.trace))
    handler.addFilter(_WatcherFilter(watchers))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    _handler = handler
    _current = watchers
    return watchers


def stack_enabled() -> bool:
    """Whether error records should carry the call stack."""
    return _current.trace


def reset() -> None:
    """Remove the console handler (for testing)."""
    global _handler, _current
    if _handler is not None:
        logging.getLogger(ROOT_LOGGER).removeHandler(_handler)
    _handler = None
    _current = Watchers()
