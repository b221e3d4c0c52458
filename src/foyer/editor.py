"""Line editing: edit buffer, kill ring, history, and raw key decoding."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)

# Control bytes
CTRL_A = 0x01
CTRL_C = 0x03
CTRL_D = 0x04
CTRL_E = 0x05
CTRL_H = 0x08
LF = 0x0A
CTRL_K = 0x0B
CTRL_L = 0x0C
CR = 0x0D
CTRL_U = 0x15
CTRL_W = 0x17
CTRL_Y = 0x19
ESC = 0x1B
DEL = 0x7F

_MAX_SEQUENCE = 16  # longest escape sequence we wait for before giving up on it


class KeyResult(Enum):
    CONTINUE = "continue"
    SUBMIT = "submit"
    EOF = "eof"
    INTERRUPT = "interrupt"
    CLEAR_SCREEN = "clear_screen"


class EditBuffer:
    """Characters plus a cursor offset, with ``0 <= cursor <= len(text)``."""

    def __init__(self, text: str = "") -> None:
        self._chars: list[str] = list(text)
        self._cursor = len(self._chars)

    @property
    def text(self) -> str:
        return "".join(self._chars)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._chars)

    def set(self, text: str) -> None:
        """Replace the contents and put the cursor at the end."""
        self._chars = list(text)
        self._cursor = len(self._chars)

    def insert(self, text: str) -> None:
        self._chars[self._cursor : self._cursor] = list(text)
        self._cursor += len(text)

    def backspace(self) -> None:
        if self._cursor == 0:
            return
        del self._chars[self._cursor - 1]
        self._cursor -= 1

    def delete(self) -> None:
        if self._cursor >= len(self._chars):
            return
        del self._chars[self._cursor]

    def move_left(self) -> None:
        if self._cursor > 0:
            self._cursor -= 1

    def move_right(self) -> None:
        if self._cursor < len(self._chars):
            self._cursor += 1

    def move_home(self) -> None:
        self._cursor = 0

    def move_end(self) -> None:
        self._cursor = len(self._chars)

    def kill_to_end(self) -> str:
        killed = "".join(self._chars[self._cursor :])
        del self._chars[self._cursor :]
        return killed

    def kill_to_start(self) -> str:
        killed = "".join(self._chars[: self._cursor])
        del self._chars[: self._cursor]
        self._cursor = 0
        return killed

    def kill_word_backward(self) -> str:
        """Kill back to the start of the previous word, skipping trailing whitespace first."""
        pos = self._cursor
        while pos > 0 and self._chars[pos - 1].isspace():
            pos -= 1
        while pos > 0 and not self._chars[pos - 1].isspace():
            pos -= 1
        killed = "".join(self._chars[pos : self._cursor])
        del self._chars[pos : self._cursor]
        self._cursor = pos
        return killed


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class HistoryStore(Protocol):
    """Optional persistence collaborator for submitted lines."""

    def load(self, limit: int) -> list[str]: ...

    def add(self, line: str) -> None: ...


class History:
    """Append-only list of submitted lines with a navigation pointer.

    The first step away from the live buffer saves it as the draft; stepping
    past the newest entry puts the draft back exactly.
    """

    def __init__(self, entries: list[str] | None = None, max_entries: int = 1000) -> None:
        self.max_entries = max(1, max_entries)
        self._entries: list[str] = list(entries or [])[-self.max_entries :]
        self._pointer: int | None = None
        self._draft = ""

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def pointer(self) -> int | None:
        return self._pointer

    @property
    def draft(self) -> str:
        return self._draft

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, line: str) -> bool:
        """Append ``line`` unless it is blank or repeats the last entry."""
        if not line.strip():
            return False
        if self._entries and self._entries[-1] == line:
            return False
        self._entries.append(line)
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]
        return True

    def reset(self) -> None:
        self._pointer = None
        self._draft = ""

    def previous(self, buffer: EditBuffer) -> None:
        if self._pointer is None:
            if not self._entries:
                return
            self._draft = buffer.text
            self._pointer = len(self._entries) - 1
        elif self._pointer > 0:
            self._pointer -= 1
        buffer.set(self._entries[self._pointer])

    def next(self, buffer: EditBuffer) -> None:
        if self._pointer is None:
            return
        self._pointer += 1
        if self._pointer >= len(self._entries):
            buffer.set(self._draft)
            self._pointer = None
            self._draft = ""
        else:
            buffer.set(self._entries[self._pointer])


# ---------------------------------------------------------------------------
# Key decoding
# ---------------------------------------------------------------------------


class LineEditor:
    """Turns raw terminal bytes into edits on an :class:`EditBuffer`.

    Bytes left over after a terminating key (or an escape sequence split
    across reads) stay pending and are decoded by the next :meth:`feed`.
    """

    def __init__(self, history: History | None = None) -> None:
        self.history = history or History()
        self.buffer = EditBuffer()
        self.kill_ring = ""
        self._pending = b""

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def reset(self) -> None:
        """Start a fresh line. Pending type-ahead is kept."""
        self.buffer = EditBuffer()
        self.history.reset()

    def discard_pending(self) -> None:
        self._pending = b""

    def feed(self, data: bytes) -> KeyResult:
        """Decode ``data`` (plus anything pending) until a terminating key or the end."""
        if self._pending == b"\x1b" and data[:1] not in (b"", b"[", b"O"):
            # Escape pressed on its own in an earlier read
            self._pending = b""
        self._pending += data
        while self._pending:
            consumed, result = self._decode(self._pending)
            if consumed == 0:
                break
            self._pending = self._pending[consumed:]
            if result is not KeyResult.CONTINUE:
                return result
        return KeyResult.CONTINUE

    def _decode(self, buf: bytes) -> tuple[int, KeyResult]:
        byte = buf[0]

        if byte in (CR, LF):
            # Swallow the LF of a CRLF pair so it is not read as a second submit
            if byte == CR and len(buf) > 1 and buf[1] == LF:
                return 2, KeyResult.SUBMIT
            return 1, KeyResult.SUBMIT
        if byte == CTRL_C:
            return 1, KeyResult.INTERRUPT
        if byte == CTRL_D:
            if len(self.buffer) == 0:
                return 1, KeyResult.EOF
            return 1, KeyResult.CONTINUE
        if byte == CTRL_L:
            return 1, KeyResult.CLEAR_SCREEN
        if byte == ESC:
            return self._decode_escape(buf)

        if 0x20 <= byte <= 0x7E:
            self.buffer.insert(chr(byte))
        elif byte in (DEL, CTRL_H):
            self.buffer.backspace()
        elif byte == CTRL_A:
            self.buffer.move_home()
        elif byte == CTRL_E:
            self.buffer.move_end()
        elif byte == CTRL_K:
            self._kill(self.buffer.kill_to_end())
        elif byte == CTRL_U:
            self._kill(self.buffer.kill_to_start())
        elif byte == CTRL_W:
            self._kill(self.buffer.kill_word_backward())
        elif byte == CTRL_Y:
            if self.kill_ring:
                self.buffer.insert(self.kill_ring)
        return 1, KeyResult.CONTINUE

    def _kill(self, killed: str) -> None:
        if killed:
            self.kill_ring = killed

    def _decode_escape(self, buf: bytes) -> tuple[int, KeyResult]:
        if len(buf) < 2:
            return 0, KeyResult.CONTINUE
        intro = buf[1]
        if intro == ord("O"):
            # SS3: application-mode cursor keys
            if len(buf) < 3:
                return 0, KeyResult.CONTINUE
            self._apply_sequence("", chr(buf[2]))
            return 3, KeyResult.CONTINUE
        if intro != ord("["):
            if 0x20 <= intro <= 0x7E:
                # Alt-modified key; ignored
                return 2, KeyResult.CONTINUE
            # Bare Escape; the control byte after it is decoded on its own
            return 1, KeyResult.CONTINUE

        end = 2
        while end < len(buf) and 0x20 <= buf[end] <= 0x3F:
            end += 1
        if end >= len(buf):
            if len(buf) > _MAX_SEQUENCE:
                return 1, KeyResult.CONTINUE
            return 0, KeyResult.CONTINUE
        if not 0x40 <= buf[end] <= 0x7E:
            # Malformed; drop the introducer and decode the stray byte on its own
            return end, KeyResult.CONTINUE
        params = buf[2:end].decode("ascii", errors="replace")
        final = chr(buf[end])
        self._apply_sequence(params, final)
        return end + 1, KeyResult.CONTINUE

    def _apply_sequence(self, params: str, final: str) -> None:
        if final == "A":
            self.history.previous(self.buffer)
        elif final == "B":
            self.history.next(self.buffer)
        elif final == "C":
            self.buffer.move_right()
        elif final == "D":
            self.buffer.move_left()
        elif final == "H":
            self.buffer.move_home()
        elif final == "F":
            self.buffer.move_end()
        elif final == "~":
            if params in ("1", "7"):
                self.buffer.move_home()
            elif params in ("4", "8"):
                self.buffer.move_end()
            elif params == "3":
                self.buffer.delete()
        else:
            logger.debug("Ignoring unknown escape sequence %r%s", params, final)
