"""Formatting helpers shared by the Streamlit page and the terminal client."""
from __future__ import annotations

from typing import Optional, Tuple

from .types import MessageType, SourceDocument

AVATARS = {"user": "🧑‍💻", "assistant": "🧠"}


def avatar_for(message_type: MessageType) -> str:
    return AVATARS.get(message_type, AVATARS["assistant"])


def source_heading(index: int) -> str:
    """Heading for the ``index``-th (zero-based) source of an answer."""
    return f"Source {index + 1}"


def format_source_document(document: SourceDocument) -> Tuple[str, Optional[str]]:
    """Return the body text and the provenance label of a source document.

    The page number is appended to the body when the metadata has one.
    """
    body = document.content
    page_number = document.page_number
    if page_number is not None and str(page_number).strip():
        body = f"{body}\n\nPage Number: {page_number}"
    return body, document.source


def truncate(text: str, max_chars: int) -> str:
    text = text.strip().replace("\n", " ")
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text
