"""The terminal interaction engine.

:class:`ConsoleEngine` is the only object that writes to the terminal. The
application's foreground thread calls ``readline`` / ``show_spinner`` /
``start_progress``; background threads hand lines over with ``publish``.
Whichever thread services the active mode waits in ``select`` on stdin and
the output channel, and every write sequence runs under one mutex.
"""

from __future__ import annotations

import _thread
import asyncio
import logging
import os
import queue
import select
import sys
import threading
import time
from dataclasses import replace
from typing import Any, Callable, TextIO

from rich.errors import MarkupError

from .channel import LineKind, OutputBuffer, OutputChannel
from .config import ConsoleConfig
from .editor import History, HistoryStore, KeyResult, LineEditor
from .errors import CancellationSignal
from .modes import IDLE, Event, Mode, ModeState, transition
from .style import (
    CHROME,
    CLEAR_LINE,
    CLEAR_SCREEN,
    ERROR_RED,
    cursor_column,
    markup_to_ansi,
    style_text,
    to_raw_newlines,
)
from .terminal import TerminalController
from .widgets import ProgressLine, Spinner

logger = logging.getLogger(__name__)

_READ_SIZE = 1024
_ACK_TIMEOUT = 1.0  # seconds to wait for an overlay thread to apply a command
_JOIN_TIMEOUT = 2.0


def _make_pipe() -> tuple[int, int]:
    read_fd, write_fd = os.pipe()
    os.set_blocking(read_fd, False)
    os.set_blocking(write_fd, False)
    return read_fd, write_fd


def _signal(fd: int) -> None:
    try:
        os.write(fd, b"x")
    except (BlockingIOError, OSError):
        pass


def _drain_fd(fd: int) -> None:
    try:
        while os.read(fd, 4096):
            pass
    except (BlockingIOError, OSError):
        pass


class _OverlayPump(threading.Thread):
    """Owns an overlay widget while its mode is active.

    Waits on stdin, the output channel and its own command pipe. The spinner
    advances once per tick interval; output is interleaved above it; Ctrl-C
    ends the pump and is reported to the engine. The engine
    never touches the widget directly: it sends ``update`` and ``stop``
    commands and waits for them to be applied.
    """

    def __init__(self, engine: ConsoleEngine, widget: Spinner | ProgressLine, interval: float | None) -> None:
        super().__init__(name=f"foyer-{type(widget).__name__.lower()}", daemon=True)
        self._engine = engine
        self._widget = widget
        self._interval = interval
        self._commands: queue.SimpleQueue[tuple[str, str, threading.Event]] = queue.SimpleQueue()
        self._wake_r, self._wake_w = _make_pipe()
        self.interrupted = False

    def send(self, command: str, value: str = "") -> None:
        done = threading.Event()
        self._commands.put((command, value, done))
        _signal(self._wake_w)
        if self.is_alive() and threading.current_thread() is not self:
            done.wait(_ACK_TIMEOUT)

    def update(self, value: str) -> None:
        self.send("update", value)

    def stop(self) -> None:
        if self.is_alive():
            self.send("stop")
            self.join(_JOIN_TIMEOUT)
            if self.is_alive():
                logger.warning("Overlay thread %s did not stop in time", self.name)
                return
        for fd in (self._wake_r, self._wake_w):
            try:
                os.close(fd)
            except OSError:
                pass

    def run(self) -> None:
        engine = self._engine
        widget = self._widget
        interval = self._interval
        watch_stdin = True
        engine._draw_overlay(widget.render())
        next_tick = time.monotonic() + interval if interval is not None else None
        try:
            while True:
                fds = [self._wake_r, engine.channel.fileno()]
                if watch_stdin:
                    fds.append(engine._in_fd)
                timeout = max(0.0, next_tick - time.monotonic()) if next_tick is not None else None
                ready = engine._wait(fds, timeout)

                if self._wake_r in ready:
                    _drain_fd(self._wake_r)
                    if self._apply_commands():
                        return
                if engine.channel.fileno() in ready:
                    lines = engine.channel.drain()
                    if lines:
                        engine._render_output(lines, widget.render())
                if watch_stdin and engine._in_fd in ready:
                    data = engine._read_input()
                    if data == b"":
                        watch_stdin = False
                    elif data and b"\x03" in data:
                        self.interrupted = True
                        engine._on_overlay_interrupt()
                        return
                    # Other keystrokes are discarded while an overlay is up
                if next_tick is not None and time.monotonic() >= next_tick:
                    # Advance on schedule even when output keeps select busy
                    widget.tick()
                    engine._draw_overlay(widget.render())
                    next_tick = time.monotonic() + interval
        except Exception:
            logger.exception("Overlay thread failed")
        finally:
            self._ack_remaining()

    def _apply_commands(self) -> bool:
        """Apply queued commands; True when asked to stop."""
        while True:
            try:
                command, value, done = self._commands.get_nowait()
            except queue.Empty:
                return False
            if command == "stop":
                done.set()
                return True
            if command == "update":
                self._widget.update(value)
                self._engine._draw_overlay(self._widget.render())
            done.set()

    def _ack_remaining(self) -> None:
        while True:
            try:
                _, _, done = self._commands.get_nowait()
            except queue.Empty:
                return
            done.set()


class ConsoleEngine:
    """Single writer to the terminal, multiplexing input, output and widgets."""

    def __init__(
        self,
        *,
        stdin: Any = None,
        stdout: TextIO | None = None,
        config: ConsoleConfig | None = None,
        history_store: HistoryStore | None = None,
        raw: bool = True,
    ) -> None:
        self.config = config or ConsoleConfig()
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._in_fd = self._stdin.fileno()

        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._state: ModeState = IDLE
        self._closed = False

        self.channel = OutputChannel()
        self._control_r, self._control_w = _make_pipe()
        self._resumed = threading.Event()
        self._resumed.set()
        self._parked = threading.Event()  # set while no reader is touching stdin or the screen
        self._parked.set()

        self._history_store = history_store
        self.editor = LineEditor(History(self._load_history(), self.config.history.max_entries))

        self._pump: _OverlayPump | None = None
        self._owner: threading.Thread | None = None
        self._interrupt_requested = False

        self.terminal = TerminalController(self._in_fd, self._stdout)
        if raw:
            self.terminal.acquire()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def current_mode(self) -> Mode:
        return self._state.mode

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def history(self) -> History:
        return self.editor.history

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def interrupt_requested(self) -> bool:
        return self._interrupt_requested

    def check_cancelled(self) -> None:
        """Raise :class:`CancellationSignal` once for an interrupt seen by an overlay."""
        if self._interrupt_requested:
            self._interrupt_requested = False
            raise CancellationSignal()

    # ------------------------------------------------------------------
    # Output from any thread
    # ------------------------------------------------------------------

    def publish(self, line: str) -> None:
        """Queue a line for display. Legal from any thread in any mode."""
        self.channel.publish(line)

    def publish_markup(self, markup: str) -> None:
        """Publish a line written in Rich console markup."""
        try:
            self.channel.publish(markup_to_ansi(markup))
        except MarkupError:
            self.channel.publish(markup)

    def publish_buffer(self, buffer: OutputBuffer) -> None:
        """Publish every line of ``buffer`` in order, then clear it."""
        for entry in buffer.lines:
            if entry.kind is LineKind.DEBUG:
                self.channel.publish(style_text(entry.text, CHROME))
            elif entry.kind is LineKind.ERROR:
                self.channel.publish(style_text(entry.text, ERROR_RED))
            else:
                self.channel.publish(entry.text)
        buffer.clear()

    def flush(self) -> None:
        """Print queued output now. Only has an effect while idle."""
        if self._state.mode is Mode.IDLE and not self._closed:
            self._flush_pending()

    # ------------------------------------------------------------------
    # Line input
    # ------------------------------------------------------------------

    def readline(self, prompt: str = "") -> str | None:
        """Read one line with editing. Returns None at end of input.

        Raises :class:`CancellationSignal` if the interrupt key is pressed.
        """
        if self._closed:
            return None
        self._transition(Event.READLINE, effect=lambda old, new: self._parked.clear())
        try:
            return self._read_line(prompt)
        finally:
            self._parked.set()
            self._finish_input()

    def _finish_input(self) -> None:
        with self._state_lock:
            state = self._state
            if state.mode is Mode.PAUSED and state.previous is not None:
                if state.previous.mode is Mode.READING_INPUT:
                    # The read ended while paused, so resume lands in idle
                    self._state = replace(state, previous=IDLE)
                return
            done = state.mode is Mode.READING_INPUT
        if done:
            self._transition(Event.INPUT_DONE)

    async def readline_async(self, prompt: str = "") -> str | None:
        """Run :meth:`readline` in the default executor for asyncio applications."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.readline, prompt)

    def _read_line(self, prompt: str) -> str | None:
        editor = self.editor
        editor.reset()
        self._flush_pending()
        self._draw_input(prompt)

        result = editor.feed(b"") if editor.has_pending else KeyResult.CONTINUE
        while True:
            if result is KeyResult.SUBMIT:
                return self._submit(prompt)
            if result is KeyResult.EOF:
                self._emit(CLEAR_LINE)
                return None
            if result is KeyResult.INTERRUPT:
                self._emit(CLEAR_LINE)
                editor.discard_pending()
                raise CancellationSignal()
            if result is KeyResult.CLEAR_SCREEN:
                self._emit(CLEAR_SCREEN + self._input_line(prompt))
                result = editor.feed(b"")
                continue

            if self._closed:
                return None
            if self._state.mode is Mode.PAUSED:
                if self._park():
                    self._draw_input(prompt)
                continue

            ready = self._wait([self._in_fd, self.channel.fileno(), self._control_r], None)
            if self._control_r in ready:
                _drain_fd(self._control_r)
                continue
            if self._state.mode is Mode.PAUSED:
                continue
            if self.channel.fileno() in ready:
                lines = self.channel.drain()
                if lines:
                    self._render_output(lines, self._input_line(prompt))
            if self._in_fd in ready:
                data = self._read_input()
                if data == b"":
                    # stdin closed
                    self._emit(CLEAR_LINE)
                    return None
                if data:
                    result = editor.feed(data)
                    if result is KeyResult.CONTINUE:
                        self._draw_input(prompt)

    def _park(self) -> bool:
        """Block a paused reader until resume. True when reading should go on."""
        self._parked.set()
        self._resumed.wait()
        with self._state_lock:
            if self._closed or self._state.mode is Mode.PAUSED:
                # Closed, or paused again before we woke; stay parked
                return False
            self._parked.clear()
            return True

    def _submit(self, prompt: str) -> str:
        line = self.editor.buffer.text
        self._emit(f"{CLEAR_LINE}{prompt}{line}\r\n")
        if self.editor.history.add(line) and self._history_store is not None:
            try:
                self._history_store.add(line)
            except Exception as e:
                logger.warning("Failed to save command history: %s", e)
        return line

    def _load_history(self) -> list[str]:
        if self._history_store is None:
            return []
        try:
            return list(self._history_store.load(self.config.history.max_entries))
        except Exception as e:
            logger.warning("Failed to load command history: %s", e)
            return []

    def _input_line(self, prompt: str) -> str:
        buffer = self.editor.buffer
        return f"{prompt}{buffer.text}{cursor_column(prompt, buffer.cursor)}"

    def _draw_input(self, prompt: str) -> None:
        if self._state.mode is Mode.PAUSED:
            return
        self._emit(CLEAR_LINE + self._input_line(prompt))

    # ------------------------------------------------------------------
    # Spinner
    # ------------------------------------------------------------------

    def show_spinner(self, message: str) -> None:
        """Enter streaming mode with a spinner, or update its message."""

        def effect(old: ModeState, new: ModeState) -> None:
            if old.mode is Mode.STREAMING:
                if self._pump is not None:
                    self._pump.update(message)
                return
            self._owner = threading.current_thread()
            self._interrupt_requested = False
            self._flush_input()
            self._flush_pending()
            self._start_pump(new)

        self._transition(Event.SHOW_SPINNER, message=message, effect=effect)

    def hide_spinner(self) -> None:
        """Leave streaming mode. Blocks until the spinner thread has stopped."""

        def effect(old: ModeState, new: ModeState) -> None:
            self._stop_pump()
            self._emit(CLEAR_LINE)
            self._flush_input()

        self._transition(Event.HIDE_SPINNER, effect=effect)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def start_progress(self) -> None:
        def effect(old: ModeState, new: ModeState) -> None:
            self._owner = threading.current_thread()
            self._interrupt_requested = False
            self._flush_pending()
            self._start_pump(new)

        self._transition(Event.START_PROGRESS, effect=effect)

    def update_progress(self, text: str) -> None:
        """Replace the progress line with ``text``, drawn verbatim."""

        def effect(old: ModeState, new: ModeState) -> None:
            if self._pump is not None and self._pump.is_alive():
                self._pump.update(text)
            else:
                self._draw_overlay(text)

        self._transition(Event.UPDATE_PROGRESS, message=text, effect=effect)

    def end_progress(self, keep: bool = False) -> None:
        """Leave progress mode, clearing the line or keeping the final text with ``keep``."""

        def effect(old: ModeState, new: ModeState) -> None:
            self._stop_pump()
            if keep and old.message:
                self._emit(f"{CLEAR_LINE}{to_raw_newlines(old.message)}\r\n")
            else:
                self._emit(CLEAR_LINE)

        self._transition(Event.END_PROGRESS, effect=effect)

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Suspend the active mode and hand the terminal back in its original settings."""

        suspended: list[ModeState] = []

        def effect(old: ModeState, new: ModeState) -> None:
            if old.mode is Mode.PAUSED:
                return
            suspended.append(old)
            self._resumed.clear()
            if old.mode in (Mode.STREAMING, Mode.PROGRESS):
                self._stop_pump()

        self._transition(Event.PAUSE, effect=effect)
        if not suspended:
            return
        # Wake a reader blocked in select, then wait until it has stopped writing
        _signal(self._control_w)
        if not self._parked.wait(_ACK_TIMEOUT):
            logger.warning("Input reader did not park before pause")
        if suspended[0].mode is not Mode.IDLE:
            self._emit(CLEAR_LINE)
        self.terminal.suspend()

    def resume(self) -> None:
        """Restore exactly the mode that was active before :meth:`pause`."""

        def effect(old: ModeState, new: ModeState) -> None:
            self.terminal.restore_raw()
            if new.mode in (Mode.STREAMING, Mode.PROGRESS):
                self._start_pump(new)

        self._transition(Event.RESUME, effect=effect)
        self._resumed.set()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop widgets, print remaining output and restore the terminal. Runs once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._stop_pump()
        self._resumed.set()
        _signal(self._control_w)
        lines = self.channel.drain()
        if lines:
            self._render_output(lines, "")
        self.channel.close()
        self.terminal.release()
        for fd in (self._control_r, self._control_w):
            try:
                os.close(fd)
            except OSError:
                pass

    def __enter__(self) -> ConsoleEngine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(
        self,
        event: Event,
        *,
        message: str = "",
        effect: Callable[[ModeState, ModeState], None] | None = None,
    ) -> ModeState:
        """Validate ``event``, run its terminal effect, then commit the new state."""
        with self._state_lock:
            old = self._state
            new = transition(old, event, message=message, now=time.monotonic())
            if effect is not None:
                effect(old, new)
            self._state = new
        if old.mode is not new.mode:
            logger.debug("State transition: %s -> %s", old.name, new.name)
            if self.config.debug:
                self.channel.publish(style_text(f"[console] State transition: {old.name} -> {new.name}", CHROME))
        return new

    # ------------------------------------------------------------------
    # Overlay thread plumbing
    # ------------------------------------------------------------------

    def _start_pump(self, state: ModeState) -> None:
        spinner_cfg = self.config.spinner
        widget: Spinner | ProgressLine
        if state.mode is Mode.STREAMING:
            widget = Spinner(
                state.message,
                frames=spinner_cfg.frames,
                started=state.started,
                show_elapsed=spinner_cfg.show_elapsed,
                color=spinner_cfg.color,
            )
            interval: float | None = spinner_cfg.interval
        else:
            widget = ProgressLine(state.message)
            interval = None
        self._pump = _OverlayPump(self, widget, interval)
        self._pump.start()

    def _stop_pump(self) -> None:
        pump, self._pump = self._pump, None
        if pump is not None:
            pump.stop()

    def _on_overlay_interrupt(self) -> None:
        self._emit(CLEAR_LINE)
        self._flush_input()
        self._interrupt_requested = True
        owner = self._owner
        if (
            self.config.interrupt_main
            and owner is threading.main_thread()
            and owner is not threading.current_thread()
        ):
            _thread.interrupt_main()

    # ------------------------------------------------------------------
    # Terminal I/O
    # ------------------------------------------------------------------

    def _wait(self, fds: list[int], timeout: float | None) -> list[int]:
        try:
            ready, _, _ = select.select(fds, [], [], timeout)
        except (OSError, ValueError):
            if self._closed:
                return []
            raise
        return ready

    def _read_input(self) -> bytes | None:
        """Read available stdin bytes; ``b""`` means stdin is closed."""
        try:
            return os.read(self._in_fd, _READ_SIZE)
        except (BlockingIOError, InterruptedError):
            return None

    def _flush_input(self) -> None:
        """Discard keystrokes typed ahead at the OS and editor level."""
        self.editor.discard_pending()
        while True:
            try:
                ready, _, _ = select.select([self._in_fd], [], [], 0)
            except (OSError, ValueError):
                return
            if not ready:
                return
            data = self._read_input()
            if not data:
                return

    def _flush_pending(self) -> None:
        lines = self.channel.drain()
        if lines:
            self._render_output(lines, "")

    def _render_output(self, lines: list[str], redraw: str) -> None:
        """Clear the current line, print ``lines``, then redraw the active widget."""
        parts = [CLEAR_LINE]
        for line in lines:
            parts.append(to_raw_newlines(line))
            parts.append("\r\n")
        parts.append(redraw)
        self._emit("".join(parts))

    def _draw_overlay(self, text: str) -> None:
        self._emit(CLEAR_LINE + text)

    def _emit(self, text: str) -> None:
        with self._write_lock:
            try:
                self._stdout.write(text)
                self._stdout.flush()
            except (OSError, ValueError):
                logger.debug("Terminal write failed", exc_info=True)
