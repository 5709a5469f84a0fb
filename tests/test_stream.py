from __future__ import annotations

import asyncio
from typing import AsyncIterator

import httpx
import pytest

from documate.errors import TurnInProgress
from documate.session import SessionSnapshot, SessionState
from documate.stream import FETCH_ERROR, StreamController
from documate.types import Message, SourceDocument

from fakes import API_URL, FakeAnswerService, sse

DOC_ONE = {"pageContent": "Timer registers", "metadata": {"source": "atmega.pdf", "page_number": 94}}
DOC_TWO = {"pageContent": "Clock prescaler", "metadata": {"source": "atmega.pdf"}}


def _controller(service: FakeAnswerService, **kwargs: object) -> tuple[SessionState, StreamController]:
    session = SessionState()
    controller = StreamController(session, API_URL, transport=service.transport, **kwargs)  # type: ignore[arg-type]
    return session, controller


async def _wait_for_pending(session: SessionState, text: str) -> None:
    for _ in range(200):
        if session.snapshot().pending_text == text:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"pending text never reached {text!r}")


@pytest.mark.asyncio
async def test_tokens_are_concatenated_in_arrival_order() -> None:
    service = FakeAnswerService([sse({"data": "Hel"}, {"data": "lo"}, {"data": " there"}, "[DONE]")])
    session, controller = _controller(service)

    task = controller.start_turn("Greeting?", [])
    assert session.loading
    await task

    assert session.messages == [Message(type="assistant", text="Hello there", source_documents=None)]
    assert session.history == [("Greeting?", "Hello there")]
    assert not session.loading
    assert session.last_error is None


@pytest.mark.asyncio
async def test_request_carries_question_and_history() -> None:
    service = FakeAnswerService([sse("[DONE]")])
    _, controller = _controller(service)

    await controller.start_turn("Next?", [("First?", "First answer")])

    assert service.requests == [{"question": "Next?", "history": [["First?", "First answer"]]}]


@pytest.mark.asyncio
async def test_events_split_across_network_chunks() -> None:
    payload = sse({"data": "ab"}, {"data": "cd"}, "[DONE]")
    service = FakeAnswerService([payload[:7], payload[7:20], payload[20:]])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    assert session.history == [("q", "abcd")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "events",
    [
        [{"sourceDocs": [DOC_ONE]}, {"data": "Answer"}, "[DONE]"],
        [{"data": "Ans"}, {"sourceDocs": [DOC_ONE]}, {"data": "wer"}, "[DONE]"],
        [{"data": "Answer"}, {"sourceDocs": [DOC_ONE]}, "[DONE]"],
    ],
)
async def test_source_documents_attach_regardless_of_position(events: list) -> None:
    service = FakeAnswerService([sse(*events)])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    (message,) = session.messages
    assert message.text == "Answer"
    assert message.source_documents == (
        SourceDocument(content="Timer registers", metadata={"source": "atmega.pdf", "page_number": 94}),
    )


@pytest.mark.asyncio
async def test_second_source_documents_event_replaces_first() -> None:
    service = FakeAnswerService([sse({"sourceDocs": [DOC_ONE]}, {"data": "x"}, {"sourceDocs": [DOC_TWO]}, "[DONE]")])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    (message,) = session.messages
    assert message.source_documents == (SourceDocument(content="Clock prescaler", metadata={"source": "atmega.pdf"}),)


@pytest.mark.asyncio
async def test_malformed_event_is_reported_and_stream_continues() -> None:
    service = FakeAnswerService([sse({"data": "Hel"}, "not json", {"unexpected": 1}, {"data": "lo"}, "[DONE]")])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    assert session.history == [("q", "Hello")]
    assert session.last_error is not None
    assert "Malformed event" in session.last_error


@pytest.mark.asyncio
async def test_events_after_done_are_not_applied() -> None:
    service = FakeAnswerService([sse({"data": "one"}, "[DONE]", {"data": "two"}, "[DONE]")])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    assert session.history == [("q", "one")]
    assert len(session.messages) == 1


@pytest.mark.asyncio
async def test_http_error_status_discards_turn() -> None:
    service = FakeAnswerService([b"upstream exploded"], status_code=500)
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    assert session.messages == []
    assert session.history == []
    assert not session.loading
    assert session.last_error == FETCH_ERROR


@pytest.mark.asyncio
async def test_connection_failure_discards_turn() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    session = SessionState()
    controller = StreamController(session, API_URL, transport=httpx.MockTransport(refuse))

    await controller.start_turn("q", [])

    assert session.messages == []
    assert not session.loading
    assert session.last_error is not None


@pytest.mark.asyncio
async def test_stream_closing_before_done_is_a_transport_error() -> None:
    service = FakeAnswerService([sse({"data": "half an ans"})])
    session, controller = _controller(service)

    await controller.start_turn("q", [])

    assert session.messages == []
    assert session.history == []
    assert session.snapshot().pending_text is None
    assert session.last_error is not None


@pytest.mark.asyncio
async def test_cancel_discards_partial_answer_and_ignores_later_events() -> None:
    release = asyncio.Event()

    async def slow_body() -> AsyncIterator[bytes]:
        yield sse({"data": "Hel"})
        await release.wait()
        yield sse({"data": "lo"}, "[DONE]")

    service = FakeAnswerService(slow_body)
    session, controller = _controller(service)

    task = controller.start_turn("q", [])
    await _wait_for_pending(session, "Hel")
    controller.cancel()
    release.set()
    await controller.wait()

    assert task.cancelled()
    assert session.messages == []
    assert session.history == []
    assert not session.loading
    assert session.snapshot().pending_text is None
    assert not controller.busy


@pytest.mark.asyncio
async def test_turn_timeout_goes_through_discard_path() -> None:
    async def stalled_body() -> AsyncIterator[bytes]:
        yield sse({"data": "partial"})
        await asyncio.Event().wait()

    service = FakeAnswerService(stalled_body)
    session, controller = _controller(service, turn_timeout=0.05)

    await controller.start_turn("q", [])

    assert session.messages == []
    assert session.history == []
    assert not session.loading
    assert session.last_error is not None


@pytest.mark.asyncio
async def test_only_one_stream_at_a_time() -> None:
    release = asyncio.Event()

    async def slow_body() -> AsyncIterator[bytes]:
        await release.wait()
        yield sse({"data": "done"}, "[DONE]")

    service = FakeAnswerService(slow_body)
    session, controller = _controller(service)

    controller.start_turn("first", [])
    with pytest.raises(TurnInProgress):
        controller.start_turn("second", [])

    release.set()
    await controller.wait()
    assert session.history == [("first", "done")]
    assert len(service.requests) == 1


class ViewClosed(BaseException):
    """Stands in for a UI framework stopping the script mid-redraw."""


@pytest.mark.asyncio
async def test_listener_error_mid_stream_discards_turn() -> None:
    service = FakeAnswerService([sse({"data": "Hel"}, {"data": "lo"}, "[DONE]")])
    session, controller = _controller(service)

    def broken_view(snapshot: SessionSnapshot) -> None:
        if snapshot.pending_text:
            raise RuntimeError("view went away")

    session.subscribe(broken_view)
    with pytest.raises(RuntimeError):
        await controller.start_turn("q", [])

    assert session.messages == []
    assert session.history == []
    assert not session.loading
    assert session.active_turn is None
    assert session.snapshot().pending_text is None
    assert session.last_error == FETCH_ERROR
    assert not controller.busy


@pytest.mark.asyncio
async def test_base_exception_mid_stream_still_clears_loading() -> None:
    service = FakeAnswerService([sse({"data": "Hel"}, "[DONE]")])
    session, controller = _controller(service)

    def stopping_view(snapshot: SessionSnapshot) -> None:
        if snapshot.pending_text:
            raise ViewClosed()

    session.subscribe(stopping_view)
    with pytest.raises(ViewClosed):
        await controller.start_turn("q", [])

    assert not session.loading
    assert session.active_turn is None
    assert session.messages == []
    assert not controller.busy


@pytest.mark.asyncio
async def test_new_turn_can_start_right_after_cancel() -> None:
    release = asyncio.Event()

    async def slow_body() -> AsyncIterator[bytes]:
        yield sse({"data": "stale"})
        await release.wait()
        yield sse({"data": " more"}, "[DONE]")

    service = FakeAnswerService(slow_body, [sse({"data": "fresh"}, "[DONE]")])
    session, controller = _controller(service)

    first = controller.start_turn("old", [])
    await _wait_for_pending(session, "stale")
    controller.cancel()
    assert not controller.busy
    second = controller.start_turn("new", [])
    release.set()
    await second
    await asyncio.gather(first, return_exceptions=True)

    assert first.cancelled()
    assert session.history == [("new", "fresh")]
    assert session.messages == [Message(type="assistant", text="fresh")]
    assert not session.loading


def test_start_turn_without_event_loop_leaves_session_idle() -> None:
    session, controller = _controller(FakeAnswerService())

    with pytest.raises(RuntimeError):
        controller.start_turn("q", [])

    assert not session.loading
    assert session.active_turn is None
    assert not controller.busy
