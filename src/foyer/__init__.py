"""Foyer: a terminal interaction engine for long-running agent consoles."""

from __future__ import annotations

from .channel import OutputBuffer, OutputChannel
from .engine import ConsoleEngine
from .errors import CancellationSignal, FoyerError, StateTransitionError
from .modes import Mode, ModeState

__version__ = "0.4.0"

__all__ = [
    "CancellationSignal",
    "ConsoleEngine",
    "FoyerError",
    "Mode",
    "ModeState",
    "OutputBuffer",
    "OutputChannel",
    "StateTransitionError",
    "__version__",
]
