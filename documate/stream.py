"""Streaming client that drives one chat turn at a time."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from .errors import MalformedEvent, TransportError, TurnInProgress
from .events import Done, SourceDocs, Token, decode_event, iter_sse_data
from .session import SessionState
from .types import ConversationHistory, history_payload

logger = logging.getLogger(__name__)

FETCH_ERROR = "An error occurred while fetching the data. Please try again."


class StreamController:
    """Opens the event stream for a turn and applies its events to the session.

    Only one stream is open at a time. The turn is committed when the
    ``[DONE]`` sentinel arrives; cancellation, transport failures and an
    optional whole-turn timeout all discard it instead.
    """

    def __init__(
        self,
        session: SessionState,
        api_url: str,
        connect_timeout: float = 10.0,
        turn_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = session
        self.api_url = api_url
        # No read timeout: the answer service may pause for a long time between tokens.
        self.timeout = httpx.Timeout(connect_timeout, read=None)
        self.turn_timeout = turn_timeout if turn_timeout and turn_timeout > 0 else None
        self._transport = transport
        self._task: Optional[asyncio.Task] = None
        self._turn_id: Optional[int] = None

    @property
    def busy(self) -> bool:
        """True while a turn is open and has not been cancelled."""
        return self._turn_id is not None

    def start_turn(self, question: str, history: ConversationHistory) -> asyncio.Task:
        """Open the pending turn and schedule the streaming request.

        Must be called from a running event loop. The pending turn exists
        (and ``loading`` is set) by the time this returns.
        """
        if self.busy:
            raise TurnInProgress()
        loop = asyncio.get_running_loop()
        turn_id = self.session.start_pending()
        self._turn_id = turn_id
        task = loop.create_task(self._run(turn_id, question, list(history)))
        self._task = task
        return task

    def cancel(self) -> None:
        """Abandon the in-flight turn; nothing it received is kept.

        A new turn may start right away. The abandoned task can still be
        winding down, but its turn id no longer matches the session.
        """
        turn_id, self._turn_id = self._turn_id, None
        if turn_id is not None:
            self.session.discard_pending(turn_id)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait for the in-flight turn, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self, turn_id: int, question: str, history: ConversationHistory) -> None:
        try:
            if self.turn_timeout is None:
                await self._stream(turn_id, question, history)
            else:
                await asyncio.wait_for(self._stream(turn_id, question, history), timeout=self.turn_timeout)
        except asyncio.TimeoutError:
            self._fail(turn_id, TransportError(f"No complete answer within {self.turn_timeout:g} seconds"))
        except TransportError as exc:
            self._fail(turn_id, exc)
        except httpx.HTTPError as exc:
            self._fail(turn_id, TransportError(f"Connection to the answer service failed: {exc}"))
        except asyncio.CancelledError:
            self.session.discard_pending(turn_id)
            raise
        except Exception:
            logger.exception("Chat turn %s stopped unexpectedly", turn_id)
            if self.session.discard_pending(turn_id):
                self.session.set_error(FETCH_ERROR)
            raise
        finally:
            if self.session.active_turn == turn_id:
                self.session.discard_pending(turn_id)
            if self._turn_id == turn_id:
                self._turn_id = None

    async def _stream(self, turn_id: int, question: str, history: ConversationHistory) -> None:
        payload = {"question": question, "history": history_payload(history)}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            async with client.stream(
                "POST",
                self.api_url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    raise TransportError(f"Answer service returned HTTP {response.status_code}")
                async for data in iter_sse_data(response.aiter_lines()):
                    if self.session.active_turn != turn_id:
                        return
                    try:
                        event = decode_event(data)
                    except MalformedEvent as exc:
                        logger.warning("%s", exc)
                        self.session.set_error(str(exc))
                        continue
                    if isinstance(event, Done):
                        self.session.commit_pending(turn_id, question)
                        # Leaving the context managers closes the connection.
                        return
                    if isinstance(event, SourceDocs):
                        self.session.set_source_documents(turn_id, event.documents)
                    elif isinstance(event, Token):
                        self.session.append_token(turn_id, event.text)
        raise TransportError("The answer stream ended before it was complete")

    def _fail(self, turn_id: int, error: TransportError) -> None:
        logger.error("Chat turn failed: %s", error)
        if self.session.discard_pending(turn_id):
            self.session.set_error(FETCH_ERROR)
