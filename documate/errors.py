"""Error types raised by the chat session engine."""
from __future__ import annotations


class DocumateError(Exception):
    """Base class for chat session errors."""


class ValidationError(DocumateError):
    """A submission was rejected before reaching the transport."""


class EmptyInput(ValidationError):
    def __init__(self) -> None:
        super().__init__("Please input a question")


class TurnInProgress(ValidationError):
    def __init__(self) -> None:
        super().__init__("A response is still streaming; wait for it to finish")


class TransportError(DocumateError):
    """The streaming connection failed to open or dropped before completion."""


class MalformedEvent(DocumateError):
    """An event payload did not match any recognised shape."""

    def __init__(self, data: str, reason: str) -> None:
        preview = data if len(data) <= 120 else data[:120] + "..."
        super().__init__(f"Malformed event ({reason}): {preview}")
        self.data = data
        self.reason = reason
