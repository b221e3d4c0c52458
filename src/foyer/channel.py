"""Thread-safe hand-off of display lines from background threads.

Producers call :meth:`OutputChannel.publish` from any thread; the single
consumer (whichever engine thread services the active mode) waits on
:meth:`OutputChannel.fileno` in ``select`` and calls :meth:`OutputChannel.drain`.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class OutputChannel:
    """FIFO of pending lines paired with a wake pipe."""

    def __init__(self) -> None:
        self._lines: deque[str] = deque()
        self._lock = threading.Lock()
        self._closed = False
        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._read_fd, False)
        os.set_blocking(self._write_fd, False)

    def fileno(self) -> int:
        return self._read_fd

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, line: str) -> None:
        """Queue ``line`` for display. Never blocks and never raises."""
        try:
            with self._lock:
                if self._closed:
                    return
                self._lines.append(str(line))
                try:
                    os.write(self._write_fd, b"x")
                except BlockingIOError:
                    # Pipe is full of unread wake bytes; the consumer is already signalled.
                    pass
        except Exception:
            logger.debug("Dropped published line", exc_info=True)

    def drain(self) -> list[str]:
        """Remove and return every queued line in FIFO order, clearing the wake signal."""
        with self._lock:
            if not self._closed:
                try:
                    while os.read(self._read_fd, 4096):
                        pass
                except (BlockingIOError, OSError):
                    pass
            lines = list(self._lines)
            self._lines.clear()
        return lines

    def pending(self) -> int:
        with self._lock:
            return len(self._lines)

    def close(self) -> None:
        """Close the wake pipe. Later publishes are dropped silently."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for fd in (self._read_fd, self._write_fd):
                try:
                    os.close(fd)
                except OSError:
                    pass


# ---------------------------------------------------------------------------
# Buffered output
# ---------------------------------------------------------------------------


class LineKind(Enum):
    NORMAL = "normal"
    DEBUG = "debug"
    ERROR = "error"


@dataclass(frozen=True)
class BufferedLine:
    text: str
    kind: LineKind = LineKind.NORMAL


class OutputBuffer:
    """Collects lines for a later batch publish.

    Each stored entry is exactly one display line. Multi-line text is split,
    its leading and trailing blank lines dropped and runs of blank lines
    collapsed to one.
    """

    def __init__(self) -> None:
        self._lines: list[BufferedLine] = []

    def add(self, text: object, kind: LineKind = LineKind.NORMAL) -> None:
        text_str = str(text)
        if "\n" not in text_str:
            self._lines.append(BufferedLine(text_str, kind))
            return

        lines = text_str.splitlines()
        while lines and not lines[0].strip():
            lines.pop(0)
        while lines and not lines[-1].strip():
            lines.pop()

        prev_empty = False
        for line in lines:
            empty = not line.strip()
            if empty and prev_empty:
                continue
            self._lines.append(BufferedLine("" if empty else line, kind))
            prev_empty = empty

    def debug(self, text: object) -> None:
        self.add(text, LineKind.DEBUG)

    def error(self, text: object) -> None:
        self.add(text, LineKind.ERROR)

    @property
    def lines(self) -> list[BufferedLine]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __bool__(self) -> bool:
        return bool(self._lines)

    def clear(self) -> None:
        self._lines.clear()


class ChannelLogHandler(logging.Handler):
    """Logging handler that routes records through an :class:`OutputChannel`.

    Keeps log output from writing to the terminal behind the engine's back.
    """

    def __init__(self, channel: OutputChannel, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._channel = channel

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        for line in message.splitlines() or [""]:
            self._channel.publish(line)
