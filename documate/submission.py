"""Entry point for user input: validates a question and starts the turn."""
from __future__ import annotations

import asyncio
from typing import Optional

from .errors import EmptyInput, TurnInProgress
from .session import SessionState
from .stream import StreamController

SUBMIT_KEY = "Enter"


class TurnSubmitter:
    """Guards turn starts against blank input and overlapping turns."""

    def __init__(self, session: SessionState, controller: StreamController) -> None:
        self.session = session
        self.controller = controller
        self.input_buffer = ""

    def set_input(self, text: str) -> None:
        self.input_buffer = text

    def submit(self, raw_input: Optional[str] = None) -> asyncio.Task:
        """Validate the question, record it and start streaming the answer.

        Uses the input buffer when ``raw_input`` is not given. The backend
        receives the history as it was before this question.

        Raises:
            EmptyInput: the trimmed question is empty.
            TurnInProgress: an answer is still streaming.
        """
        text = (self.input_buffer if raw_input is None else raw_input).strip()
        if not text:
            raise EmptyInput()
        if self.session.loading or self.controller.busy:
            raise TurnInProgress()

        history = self.session.history
        self.session.clear_error()
        self.session.append_user_message(text)
        self.input_buffer = ""
        return self.controller.start_turn(text, history)

    def on_key_trigger(self, key: str) -> bool:
        """Handle a key press in the input box.

        Returns True when the key's default action (inserting a newline)
        should be suppressed. Enter submits when there is text and is
        swallowed when there is none.
        """
        if key != SUBMIT_KEY:
            return False
        if self.input_buffer:
            self.submit()
        return True
