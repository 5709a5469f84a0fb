"""Wiring of one chat session: state, stream controller and submitter."""
from __future__ import annotations

from typing import Optional

import httpx

from .config import Settings
from .session import SessionState
from .stream import StreamController
from .submission import TurnSubmitter


class ChatSession:
    """Everything one conversation needs, owned by whoever shows it."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.state = SessionState()
        self.controller = StreamController(
            self.state,
            api_url=settings.chat_api_url,
            connect_timeout=settings.connect_timeout_seconds,
            turn_timeout=settings.turn_timeout_seconds,
            transport=transport,
        )
        self.submitter = TurnSubmitter(self.state, self.controller)

    def cancel(self) -> None:
        self.controller.cancel()
