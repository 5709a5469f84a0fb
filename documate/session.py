"""Conversation state for one chat session."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import TurnInProgress
from .types import ConversationHistory, Message, SourceDocument

logger = logging.getLogger(__name__)

Listener = Callable[["SessionSnapshot"], None]


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session handed to renderers."""

    history: Tuple[Tuple[str, str], ...]
    messages: Tuple[Message, ...]
    pending_text: Optional[str]
    pending_source_documents: Optional[Tuple[SourceDocument, ...]]
    loading: bool
    last_error: Optional[str]

    @property
    def visible_messages(self) -> List[Message]:
        """Committed messages plus the partial answer while it is streaming."""
        visible = list(self.messages)
        if self.pending_text:
            visible.append(
                Message(
                    type="assistant",
                    text=self.pending_text,
                    source_documents=self.pending_source_documents,
                )
            )
        return visible


class SessionState:
    """Append-only conversation plus the single in-flight turn.

    Every mutation goes through one of the transition methods below, and every
    transition notifies subscribers with a fresh snapshot. Transitions that
    touch the pending turn take the turn id handed out by ``start_pending``;
    a stale id (cancelled or already committed turn) makes them a no-op.
    """

    def __init__(self) -> None:
        self._history: ConversationHistory = []
        self._messages: List[Message] = []
        self._pending_text: Optional[str] = None
        self._pending_source_documents: Optional[Tuple[SourceDocument, ...]] = None
        self._turn_id: Optional[int] = None
        self._turn_ids = itertools.count(1)
        self._loading = False
        self._last_error: Optional[str] = None
        self._listeners: List[Listener] = []

    @property
    def history(self) -> ConversationHistory:
        return list(self._history)

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def active_turn(self) -> Optional[int]:
        return self._turn_id

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            history=tuple(self._history),
            messages=tuple(self._messages),
            pending_text=self._pending_text,
            pending_source_documents=self._pending_source_documents,
            loading=self._loading,
            last_error=self._last_error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _is_active(self, turn_id: int) -> bool:
        if self._turn_id is None or self._turn_id != turn_id:
            logger.debug("Ignoring update for inactive turn %s", turn_id)
            return False
        return True

    # -- transitions -------------------------------------------------------

    def append_user_message(self, text: str) -> None:
        self._messages.append(Message(type="user", text=text))
        self._notify()

    def start_pending(self) -> int:
        """Open the pending turn and raise the loading flag."""
        if self._turn_id is not None:
            raise TurnInProgress()
        self._turn_id = next(self._turn_ids)
        self._pending_text = ""
        self._pending_source_documents = None
        self._loading = True
        self._notify()
        return self._turn_id

    def append_token(self, turn_id: int, fragment: str) -> bool:
        if not self._is_active(turn_id):
            return False
        self._pending_text = (self._pending_text or "") + fragment
        self._notify()
        return True

    def set_source_documents(self, turn_id: int, documents: Sequence[SourceDocument]) -> bool:
        """Replace the pending source documents; the latest announcement wins."""
        if not self._is_active(turn_id):
            return False
        self._pending_source_documents = tuple(documents)
        self._notify()
        return True

    def commit_pending(self, turn_id: int, question: str) -> Optional[Message]:
        """Turn the pending answer into a message and a history entry."""
        if not self._is_active(turn_id):
            return None
        text = self._pending_text or ""
        message = Message(
            type="assistant",
            text=text,
            source_documents=self._pending_source_documents,
        )
        self._history.append((question, text))
        self._messages.append(message)
        self._clear_pending()
        self._notify()
        return message

    def discard_pending(self, turn_id: int) -> bool:
        """Drop the pending turn without touching history or messages."""
        if not self._is_active(turn_id):
            return False
        self._clear_pending()
        self._notify()
        return True

    def set_error(self, message: str) -> None:
        self._last_error = message
        self._notify()

    def clear_error(self) -> None:
        if self._last_error is None:
            return
        self._last_error = None
        self._notify()

    def _clear_pending(self) -> None:
        self._turn_id = None
        self._pending_text = None
        self._pending_source_documents = None
        self._loading = False
