"""Tests for the mode transition function."""

from __future__ import annotations

import pytest

from foyer.errors import StateTransitionError
from foyer.modes import IDLE, Event, Mode, ModeState, transition


def _streaming(message: str = "Thinking...") -> ModeState:
    return transition(IDLE, Event.SHOW_SPINNER, message=message, now=100.0)


class TestLegalTransitions:
    def test_idle_to_reading_input(self) -> None:
        assert transition(IDLE, Event.READLINE).mode is Mode.READING_INPUT

    def test_input_done_returns_to_idle(self) -> None:
        state = transition(IDLE, Event.READLINE)
        assert transition(state, Event.INPUT_DONE) == IDLE

    def test_show_spinner_records_message_and_start(self) -> None:
        state = _streaming()
        assert state.mode is Mode.STREAMING
        assert state.message == "Thinking..."
        assert state.started == 100.0

    def test_spinner_update_keeps_start_time(self) -> None:
        state = transition(_streaming(), Event.SHOW_SPINNER, message="Reading...", now=200.0)
        assert state.message == "Reading..."
        assert state.started == 100.0

    def test_hide_spinner(self) -> None:
        assert transition(_streaming(), Event.HIDE_SPINNER) == IDLE

    def test_progress_lifecycle(self) -> None:
        state = transition(IDLE, Event.START_PROGRESS)
        assert state.mode is Mode.PROGRESS
        state = transition(state, Event.UPDATE_PROGRESS, message="3/10")
        assert state.message == "3/10"
        assert transition(state, Event.END_PROGRESS) == IDLE

    @pytest.mark.parametrize(
        "state",
        [IDLE, ModeState(Mode.READING_INPUT), ModeState(Mode.STREAMING, "msg", 1.0), ModeState(Mode.PROGRESS, "p")],
    )
    def test_pause_resume_restores_previous_exactly(self, state: ModeState) -> None:
        paused = transition(state, Event.PAUSE)
        assert paused.mode is Mode.PAUSED
        assert paused.previous == state
        assert transition(paused, Event.RESUME) == state

    def test_pause_when_paused_is_noop(self) -> None:
        paused = transition(_streaming(), Event.PAUSE)
        assert transition(paused, Event.PAUSE) is paused

    def test_states_are_immutable(self) -> None:
        state = _streaming()
        with pytest.raises(AttributeError):
            state.message = "changed"  # type: ignore[misc]


class TestRejectedTransitions:
    def test_readline_while_streaming(self) -> None:
        with pytest.raises(StateTransitionError, match="Cannot read input while streaming") as exc_info:
            transition(_streaming(), Event.READLINE)
        assert exc_info.value.mode == "streaming"
        assert exc_info.value.action == "read input"

    def test_spinner_while_reading(self) -> None:
        state = transition(IDLE, Event.READLINE)
        with pytest.raises(StateTransitionError, match="Cannot show spinner while reading user input"):
            transition(state, Event.SHOW_SPINNER)

    def test_nested_readline(self) -> None:
        state = transition(IDLE, Event.READLINE)
        with pytest.raises(StateTransitionError):
            transition(state, Event.READLINE)

    def test_resume_when_not_paused(self) -> None:
        with pytest.raises(StateTransitionError, match="Not in paused state"):
            transition(IDLE, Event.RESUME)

    @pytest.mark.parametrize("event", [Event.HIDE_SPINNER, Event.UPDATE_PROGRESS, Event.END_PROGRESS, Event.INPUT_DONE])
    def test_idle_rejects_closing_events(self, event: Event) -> None:
        with pytest.raises(StateTransitionError, match="idle"):
            transition(IDLE, event)

    def test_progress_rejects_spinner(self) -> None:
        state = transition(IDLE, Event.START_PROGRESS)
        with pytest.raises(StateTransitionError, match="Cannot show spinner while showing progress"):
            transition(state, Event.SHOW_SPINNER)

    def test_paused_rejects_everything_but_pause_and_resume(self) -> None:
        paused = transition(IDLE, Event.PAUSE)
        for event in (Event.READLINE, Event.SHOW_SPINNER, Event.START_PROGRESS):
            with pytest.raises(StateTransitionError, match="paused"):
                transition(paused, event)

    def test_rejection_leaves_input_state_untouched(self) -> None:
        state = _streaming()
        with pytest.raises(StateTransitionError):
            transition(state, Event.START_PROGRESS)
        assert state.mode is Mode.STREAMING
        assert state.message == "Thinking..."
