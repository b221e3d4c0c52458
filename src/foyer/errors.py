"""Exceptions raised by the console engine."""

from __future__ import annotations


class FoyerError(Exception):
    """Base class for engine errors."""


class StateTransitionError(FoyerError):
    """An operation was invoked that is illegal for the current mode.

    Raised synchronously, before any state or terminal mutation.
    """

    def __init__(self, message: str, *, mode: str = "", action: str = "") -> None:
        super().__init__(message)
        self.mode = mode
        self.action = action


class CancellationSignal(KeyboardInterrupt):
    """The user pressed the interrupt key during a blocking engine call.

    Subclasses ``KeyboardInterrupt`` so existing ``except KeyboardInterrupt``
    handlers in the application keep working.
    """
