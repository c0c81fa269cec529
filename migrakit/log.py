"""Package-wide logger used for progress and fatal messages."""

from __future__ import annotations

import abc
import sys
import time
from typing import IO, Optional

__all__ = ["Logger", "StdLogger", "NopLogger", "set_logger", "get_logger"]


def _format(fmt: str, args: tuple) -> str:
    return fmt % args if args else fmt


class Logger(abc.ABC):
    """Interface of the package logger."""

    @abc.abstractmethod
    def fatalf(self, fmt: str, *args: object) -> None:
        """Log a message and stop the program."""

    @abc.abstractmethod
    def printf(self, fmt: str, *args: object) -> None:
        """Log a message."""


class StdLogger(Logger):
    """Writes timestamped lines to a stream, standard error by default."""

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream

    def _write(self, message: str) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        if not message.endswith("\n"):
            message += "\n"
        stream.write(time.strftime("%Y/%m/%d %H:%M:%S ") + message)
        stream.flush()

    def printf(self, fmt: str, *args: object) -> None:
        self._write(_format(fmt, args))

    def fatalf(self, fmt: str, *args: object) -> None:
        self._write(_format(fmt, args))
        raise SystemExit(1)


class NopLogger(Logger):
    """Discards everything logged."""

    def printf(self, fmt: str, *args: object) -> None:
        return None

    def fatalf(self, fmt: str, *args: object) -> None:
        return None


_current: dict[str, Logger] = {"logger": StdLogger()}


def set_logger(logger: Logger) -> None:
    """Replace the package logger."""
    if not isinstance(logger, Logger):
        raise TypeError(f"expected a Logger, got {type(logger).__name__}")
    _current["logger"] = logger


def get_logger() -> Logger:
    """Return the package logger."""
    return _current["logger"]