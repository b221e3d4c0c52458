"""Interaction modes and the transition function between them.

Exactly one :class:`ModeState` is current at any instant. The engine replaces
it only through :func:`transition`, which either returns the next state or
raises :class:`~foyer.errors.StateTransitionError` without side effects.

=============  =================  =================  ==========================
From           Event              To                 Notes
=============  =================  =================  ==========================
IDLE           READLINE           READING_INPUT
IDLE           SHOW_SPINNER       STREAMING
IDLE           START_PROGRESS     PROGRESS
READING_INPUT  INPUT_DONE         IDLE               submit, EOF or cancel
STREAMING      SHOW_SPINNER       STREAMING          message update
STREAMING      HIDE_SPINNER       IDLE
PROGRESS       UPDATE_PROGRESS    PROGRESS           text update
PROGRESS       END_PROGRESS       IDLE
any            PAUSE              PAUSED             no-op when already paused
PAUSED         RESUME             previous state
=============  =================  =================  ==========================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .errors import StateTransitionError


class Mode(str, Enum):
    IDLE = "idle"
    READING_INPUT = "reading_input"
    STREAMING = "streaming"
    PROGRESS = "progress"
    PAUSED = "paused"


class Event(Enum):
    READLINE = "read input"
    INPUT_DONE = "finish input"
    SHOW_SPINNER = "show spinner"
    HIDE_SPINNER = "hide spinner"
    START_PROGRESS = "start progress"
    UPDATE_PROGRESS = "update progress"
    END_PROGRESS = "end progress"
    PAUSE = "pause"
    RESUME = "resume"


@dataclass(frozen=True)
class ModeState:
    """Current mode plus the data its widget needs to be redrawn.

    ``message`` is the spinner message in STREAMING and the progress text in
    PROGRESS. ``started`` is the spinner's monotonic start time. ``previous``
    is set only in PAUSED.
    """

    mode: Mode = Mode.IDLE
    message: str = ""
    started: float | None = None
    previous: ModeState | None = None

    @property
    def name(self) -> str:
        return self.mode.value


IDLE = ModeState()

# Messages for rejections that callers most often hit
_REJECTIONS: dict[tuple[Mode, Event], str] = {
    (Mode.STREAMING, Event.READLINE): "Cannot read input while streaming",
    (Mode.PROGRESS, Event.READLINE): "Cannot read input while showing progress",
    (Mode.READING_INPUT, Event.READLINE): "Cannot read input while already reading input",
    (Mode.READING_INPUT, Event.SHOW_SPINNER): "Cannot show spinner while reading user input",
    (Mode.READING_INPUT, Event.START_PROGRESS): "Cannot start progress while reading user input",
    (Mode.STREAMING, Event.START_PROGRESS): "Cannot start progress while streaming",
    (Mode.PROGRESS, Event.SHOW_SPINNER): "Cannot show spinner while showing progress",
}


def _reject(state: ModeState, event: Event) -> StateTransitionError:
    if event is Event.RESUME:
        message = "Not in paused state"
    else:
        message = _REJECTIONS.get((state.mode, event), f"Cannot {event.value} in {state.name} state")
    return StateTransitionError(message, mode=state.name, action=event.value)


def transition(
    state: ModeState,
    event: Event,
    *,
    message: str = "",
    now: float | None = None,
) -> ModeState:
    """Return the state that follows ``state`` on ``event``.

    ``message`` carries the spinner message or progress text; ``now`` is the
    start time recorded when a spinner is first shown.
    """
    mode = state.mode

    if event is Event.PAUSE:
        if mode is Mode.PAUSED:
            return state
        return ModeState(Mode.PAUSED, previous=state)
    if event is Event.RESUME:
        if mode is not Mode.PAUSED or state.previous is None:
            raise _reject(state, event)
        return state.previous

    if mode is Mode.IDLE:
        if event is Event.READLINE:
            return ModeState(Mode.READING_INPUT)
        if event is Event.SHOW_SPINNER:
            return ModeState(Mode.STREAMING, message=message, started=now)
        if event is Event.START_PROGRESS:
            return ModeState(Mode.PROGRESS, message=message)
    elif mode is Mode.READING_INPUT:
        if event is Event.INPUT_DONE:
            return IDLE
    elif mode is Mode.STREAMING:
        if event is Event.SHOW_SPINNER:
            return replace(state, message=message)
        if event is Event.HIDE_SPINNER:
            return IDLE
    elif mode is Mode.PROGRESS:
        if event is Event.UPDATE_PROGRESS:
            return replace(state, message=message)
        if event is Event.END_PROGRESS:
            return IDLE

    raise _reject(state, event)
