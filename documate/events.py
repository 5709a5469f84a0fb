"""Decoding of server-sent events coming back from the answer service."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Tuple, Union

from .errors import MalformedEvent
from .types import SourceDocument, source_document_from_payload

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class Done:
    """No more tokens will arrive for the current turn."""


@dataclass(frozen=True)
class SourceDocs:
    documents: Tuple[SourceDocument, ...]


@dataclass(frozen=True)
class Token:
    text: str


StreamEvent = Union[Done, SourceDocs, Token]


def decode_event(data: str) -> StreamEvent:
    """Map one event ``data`` payload onto Done, SourceDocs or Token.

    Raises:
        MalformedEvent: the payload is neither the sentinel nor a JSON object
            with a ``sourceDocs`` list or a string ``data`` field.
    """
    if data == DONE_SENTINEL:
        return Done()

    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise MalformedEvent(data, f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent(data, "expected a JSON object")

    raw_docs = payload.get("sourceDocs")
    if raw_docs is not None:
        if not isinstance(raw_docs, list):
            raise MalformedEvent(data, "sourceDocs must be a list")
        documents: List[SourceDocument] = []
        for raw in raw_docs:
            if not isinstance(raw, dict):
                raise MalformedEvent(data, "source document must be an object")
            try:
                documents.append(source_document_from_payload(raw))
            except ValueError as exc:
                raise MalformedEvent(data, str(exc)) from exc
        return SourceDocs(documents=tuple(documents))

    fragment = payload.get("data")
    if isinstance(fragment, str):
        return Token(text=fragment)
    raise MalformedEvent(data, "no sourceDocs or string data field")


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield the ``data`` of each complete event in an SSE line stream.

    Multiple ``data:`` lines of one event are joined with newlines and the
    event is dispatched on the blank line that ends it. Comments and the
    ``event``, ``id`` and ``retry`` fields carry nothing the chat needs.
    """
    buffer: List[str] = []
    async for raw_line in lines:
        line = raw_line.rstrip("\r")
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        if field_name != "data":
            continue
        if value.startswith(" "):
            value = value[1:]
        buffer.append(value)
