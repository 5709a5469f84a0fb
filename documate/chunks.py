"""Display labels for a document's stored chunks."""
from __future__ import annotations

from typing import List, Optional, Sequence

from .types import Chunk, DisplayChunk


def prepare_labels(chunks: Sequence[Chunk]) -> List[DisplayChunk]:
    """Label chunks so consecutive repeats of a header read as numbered parts.

    A section that was stored as several chunks keeps its bare header on the
    first chunk and gets " Part 2", " Part 3", ... on the following ones. Only
    consecutive repeats count: a header that comes back after a different one
    starts over with the bare header. Storage order is kept as is.

    The input headers are compared, not labels, so feeding the output back in
    is not expected to reproduce it.
    """
    labelled: List[DisplayChunk] = []
    previous: Optional[str] = None
    part = 1
    for chunk in chunks:
        header = chunk.header or ""
        if header == previous:
            part += 1
            label = f"{header} Part {part}"
        else:
            previous = header
            part = 1
            label = header
        labelled.append(DisplayChunk(header=header, body=chunk.body, id=chunk.id, label=label))
    return labelled
