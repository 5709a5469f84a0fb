"""Document library: ingestion into the chunk store and labelled read-back."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .chunks import prepare_labels
from .config import Settings
from .embeddings import ChunkEmbedder
from .ingestion import ingest_document
from .store import ChunkStore
from .types import DisplayChunk

logger = logging.getLogger(__name__)


class DocumentLibrary:
    """Coordinates ingestion, storage and display preparation of documents."""

    def __init__(
        self,
        settings: Settings,
        store: ChunkStore,
        embedder: Optional[ChunkEmbedder] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.embedder = embedder

    def ingest_file(self, file_path: Path, source_name: Optional[str] = None) -> int:
        """Parse, section and chunk a file, then replace its stored chunks."""
        if self.embedder is None:
            raise RuntimeError("An embedding model is required to ingest documents.")
        records = ingest_document(
            file_path=file_path,
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
            source_name=source_name,
        )
        if not records:
            logger.info("No extractable text in %s", file_path)
            return 0

        embeddings = self.embedder.embed_chunks(records)
        self.store.delete_document(records[0].source)
        stored = self.store.upsert_chunks(records, embeddings)
        logger.info("Stored %d chunks for %s", stored, records[0].source)
        return stored

    def documents(self, limit: int = 50) -> List[str]:
        return self.store.list_documents(limit=limit)

    def read_document(self, document: str) -> List[DisplayChunk]:
        """Chunks of a document in storage order with display labels."""
        return prepare_labels(self.store.read_chunks(document))
