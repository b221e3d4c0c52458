"""Rich-backed styling helpers for raw terminal writes.

The engine writes escape sequences straight to the output stream, so styled
text is rendered to an ANSI string up front instead of going through a live
Rich console.
"""

from __future__ import annotations

import io

from rich.console import Console
from rich.text import Text

# ---------------------------------------------------------------------------
# Color palette
# ---------------------------------------------------------------------------

GOLD = "#C5A059"  # accents
MUTED = "#8b8b8b"  # secondary text
CHROME = "#6b7280"  # debug lines, state transitions
ERROR_RED = "#CD6B6B"  # inline errors

CLEAR_LINE = "\033[2K\r"
CLEAR_SCREEN = "\033[2J\033[H"
SHOW_CURSOR = "\033[?25h"


def _render(renderable: Text) -> str:
    console = Console(
        file=io.StringIO(),
        force_terminal=True,
        color_system="truecolor",
        soft_wrap=True,
        highlight=False,
        emoji=False,
    )
    with console.capture() as capture:
        console.print(renderable, end="")
    return capture.get()


def style_text(text: str, style: str) -> str:
    """Return ``text`` wrapped in the ANSI codes for a Rich ``style``."""
    if not style:
        return text
    return _render(Text(text, style=style))


def markup_to_ansi(markup: str) -> str:
    """Render Rich console markup (``[bold]...[/bold]``) to an ANSI string."""
    return _render(Text.from_markup(markup))


def display_width(text: str) -> int:
    """Terminal cell width of ``text``, ignoring embedded ANSI sequences."""
    return Text.from_ansi(text).cell_len


def cursor_column(prompt: str, offset: int) -> str:
    """Escape sequence placing the cursor after ``offset`` buffer characters."""
    return f"\033[{display_width(prompt) + offset + 1}G"


def to_raw_newlines(text: str) -> str:
    """Raw mode disables output post-processing, so bare LF needs a CR."""
    return text.replace("\r\n", "\n").replace("\n", "\r\n")
