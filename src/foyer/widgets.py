"""Overlay widgets drawn on the terminal's last row."""

from __future__ import annotations

import time

from .config import DEFAULT_FRAMES
from .style import style_text


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``4.2s``, ``2m 5s`` or ``1h 3m``."""
    seconds = max(0.0, seconds)
    if seconds < 60:
        # Truncate rather than round so 59.96s does not read as "60.0s"
        return f"{int(seconds * 10) / 10:.1f}s"
    total = int(seconds)
    if total < 3600:
        return f"{total // 60}m {total % 60}s"
    return f"{total // 3600}h {(total % 3600) // 60}m"


class Spinner:
    """Animated glyph plus message, with an optional elapsed timer."""

    def __init__(
        self,
        message: str,
        *,
        frames: list[str] | None = None,
        started: float | None = None,
        show_elapsed: bool = True,
        color: str = "",
        clock=time.monotonic,
    ) -> None:
        self.message = message
        self.frames = list(frames or DEFAULT_FRAMES)
        self.frame = 0
        self.started = started
        self.show_elapsed = show_elapsed
        self.color = color
        self._clock = clock

    def update(self, message: str) -> None:
        self.message = message

    def tick(self) -> None:
        self.frame = (self.frame + 1) % len(self.frames)

    def elapsed(self) -> float | None:
        if self.started is None:
            return None
        return self._clock() - self.started

    def text(self) -> str:
        label = f"{self.frames[self.frame]} {self.message}"
        elapsed = self.elapsed()
        if self.show_elapsed and elapsed is not None:
            label += f" ({format_elapsed(elapsed)})"
        return label

    def render(self) -> str:
        return style_text(self.text(), self.color)


class ProgressLine:
    """Caller-supplied progress text, redrawn verbatim."""

    def __init__(self, text: str = "") -> None:
        self.text = text

    def update(self, text: str) -> None:
        self.text = text

    def tick(self) -> None:
        pass

    def render(self) -> str:
        return self.text
