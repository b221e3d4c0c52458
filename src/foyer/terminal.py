"""Raw-mode lifecycle for the controlling terminal."""

from __future__ import annotations

import logging
import os
import platform
import signal
import threading
from typing import Any, TextIO

from .style import SHOW_CURSOR

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"

# Signals that would otherwise kill the process with the terminal left raw
_RESTORE_SIGNALS = ("SIGTERM", "SIGHUP")


class TerminalController:
    """Puts a terminal in raw mode and guarantees the prior settings come back.

    When the input is not an interactive terminal (pipes, test harnesses,
    Windows) the controller degrades to pass-through: :attr:`is_raw` stays
    False and :meth:`release` does nothing.
    """

    def __init__(self, fd: int, output: TextIO | None = None) -> None:
        self._fd = fd
        self._output = output
        self._saved: list[Any] | None = None
        self._raw = False
        self._released = False
        self._lock = threading.RLock()  # re-entered from the signal handler
        self._previous_handlers: dict[int, Any] = {}

    @property
    def is_raw(self) -> bool:
        return self._raw

    @property
    def captured(self) -> bool:
        """True when prior settings were captured and will be restored."""
        return self._saved is not None

    def acquire(self) -> bool:
        """Enter raw mode. Returns False when degraded to pass-through."""
        if _IS_WINDOWS:
            return False
        import termios

        with self._lock:
            if self._saved is not None:
                return self._raw
            try:
                if not os.isatty(self._fd):
                    logger.debug("fd %d is not a tty; raw mode disabled", self._fd)
                    return False
                self._saved = termios.tcgetattr(self._fd)
            except (termios.error, OSError, ValueError):
                logger.debug("Could not capture terminal settings", exc_info=True)
                self._saved = None
                return False
            self._enter_raw()
            self._install_signal_handlers()
        return self._raw

    def _enter_raw(self) -> None:
        import termios
        import tty

        try:
            tty.setraw(self._fd, termios.TCSANOW)
            self._raw = True
        except (termios.error, OSError):
            logger.debug("Could not enter raw mode", exc_info=True)
            self._raw = False

    def _restore_saved(self) -> None:
        import termios

        if self._saved is None:
            return
        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
        except (termios.error, OSError):
            logger.debug("Could not restore terminal settings", exc_info=True)
        self._raw = False

    def suspend(self) -> None:
        """Temporarily return to the captured settings (for pause)."""
        with self._lock:
            if self._released or not self._raw:
                return
            self._restore_saved()

    def restore_raw(self) -> None:
        """Re-enter raw mode after :meth:`suspend`."""
        with self._lock:
            if self._released or self._saved is None or self._raw:
                return
            self._enter_raw()

    def release(self) -> None:
        """Restore the captured settings. Safe to call any number of times."""
        with self._lock:
            if self._released or self._saved is None:
                self._released = True
                return
            self._released = True
            self._restore_saved()
            self._remove_signal_handlers()
            if self._output is not None:
                try:
                    self._output.write(SHOW_CURSOR)
                    self._output.flush()
                except (OSError, ValueError):
                    pass

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for name in _RESTORE_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
            except (OSError, ValueError):
                continue

    def _remove_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, previous in self._previous_handlers.items():
            try:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except (OSError, ValueError):
                pass
        self._previous_handlers.clear()

    def _on_signal(self, signum: int, frame: Any) -> None:
        previous = self._previous_handlers.get(signum, signal.SIG_DFL)
        self.release()
        if callable(previous):
            previous(signum, frame)
            return
        if previous == signal.SIG_IGN:
            return
        # Default disposition: re-deliver so the process exits as it would have
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    def __enter__(self) -> TerminalController:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
