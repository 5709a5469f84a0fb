"""Embeddings for stored chunks, computed locally with sentence-transformers."""
from __future__ import annotations

from typing import List, Sequence

from sentence_transformers import SentenceTransformer

from .ingestion import ChunkRecord


def embedding_text(record: ChunkRecord) -> str:
    """Text that represents a chunk in vector space: its section title, then its body."""
    if record.header:
        return f"{record.header}\n{record.text}"
    return record.text


class ChunkEmbedder:
    """Encodes chunk records into normalized vectors."""

    def __init__(self, model_name: str) -> None:
        self.model = SentenceTransformer(model_name)

    def embed_chunks(self, records: Sequence[ChunkRecord]) -> List[List[float]]:
        if not records:
            return []
        vectors = self.model.encode(
            [embedding_text(record) for record in records],
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return vectors.tolist()
