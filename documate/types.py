"""Shared type declarations for conversation state and stored chunks."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

MessageType = Literal["user", "assistant"]

# (user_text, assistant_text) for every committed turn, oldest first.
ConversationHistory = List[Tuple[str, str]]


@dataclass(frozen=True)
class SourceDocument:
    """Retrieved passage plus provenance metadata, passed through unmodified."""

    content: str
    metadata: Mapping[str, Any]

    @property
    def source(self) -> Optional[str]:
        value = self.metadata.get("source")
        return None if value is None else str(value)

    @property
    def page_number(self) -> Optional[Any]:
        return self.metadata.get("page_number")


@dataclass(frozen=True)
class Message:
    """One entry of the visible conversation."""

    type: MessageType
    text: str
    source_documents: Optional[Tuple[SourceDocument, ...]] = None


@dataclass(frozen=True)
class Chunk:
    """A stored fragment of a document with the section header it belongs to."""

    header: str
    body: str
    id: str


@dataclass(frozen=True)
class DisplayChunk:
    """A stored chunk with its disambiguated, user-facing label."""

    header: str
    body: str
    id: str
    label: str


def history_payload(history: ConversationHistory) -> List[List[str]]:
    """Wire form of the history: a list of [question, answer] pairs."""
    return [[question, answer] for question, answer in history]


def source_document_from_payload(raw: Dict[str, Any]) -> SourceDocument:
    """Build a SourceDocument from a LangChain-style ``pageContent`` mapping."""
    content = raw.get("pageContent", raw.get("content"))
    metadata = raw.get("metadata")
    if not isinstance(content, str):
        raise ValueError("source document has no text content")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ValueError("source document metadata must be a mapping")
    return SourceDocument(content=content, metadata=dict(metadata))
