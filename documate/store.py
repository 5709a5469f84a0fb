"""Persistent store of document chunks, Chroma-backed with a local fallback."""
from __future__ import annotations

import hashlib
import logging
import pickle
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, cast

from .ingestion import ChunkRecord
from .types import Chunk

logger = logging.getLogger(__name__)


@dataclass
class FallbackItem:
    """Item stored in the local pickle-based fallback store."""

    document: str
    metadata: Dict[str, object]


class ChunkStore:
    """Stores header-tagged chunks and reads them back per document.

    Chunks are embedded on write so the answer service can search the same
    collection; reading a document back only uses the metadata.
    """

    def __init__(self, persist_dir: Path, collection_name: str) -> None:
        persist_dir.mkdir(parents=True, exist_ok=True)
        self.persist_dir = persist_dir
        self.collection_name = collection_name
        self.backend_name = "chroma"
        self.backend_error: Optional[str] = None

        # Chroma types are not stable across versions; keep them as Any.
        self.collection: Any = None
        self.client: Any = None

        self._fallback_path = self.persist_dir / f"{self.collection_name}_fallback.pkl"
        self._fallback_items: Dict[str, FallbackItem] = {}

        try:
            # Chroma can fail on Python 3.14 because of upstream pydantic.v1 internals.
            with warnings.catch_warnings():
                warnings.filterwarnings(
                    "ignore",
                    message="Core Pydantic V1 functionality isn't compatible with Python 3.14 or greater.",
                    category=UserWarning,
                )
                import chromadb  # type: ignore

            self.client = chromadb.PersistentClient(path=str(persist_dir))
            self.collection = self.client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:
            logger.warning("Chroma unavailable, using pickle fallback store: %s", exc)
            self.backend_name = "fallback"
            self.backend_error = str(exc)
            self._load_fallback()

    @property
    def _use_chroma(self) -> bool:
        return self.backend_name == "chroma" and self.collection is not None

    @staticmethod
    def _as_int(value: object, default: int = -1) -> int:
        try:
            return int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _chunk_id(record: ChunkRecord) -> str:
        fingerprint = f"{record.source}:{record.chunk_index}:{record.text}"
        return hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()

    def _load_fallback(self) -> None:
        if not self._fallback_path.exists():
            self._fallback_items = {}
            return
        try:
            with self._fallback_path.open("rb") as fh:
                raw_data = pickle.load(fh)
        except (OSError, pickle.UnpicklingError, EOFError) as exc:
            logger.warning("Could not read fallback store %s: %s", self._fallback_path, exc)
            self._fallback_items = {}
            return
        if not isinstance(raw_data, dict):
            self._fallback_items = {}
            return

        loaded: Dict[str, FallbackItem] = {}
        for item_id, item_value in raw_data.items():
            if not isinstance(item_id, str) or not isinstance(item_value, dict):
                continue
            document = item_value.get("document")
            metadata = item_value.get("metadata")
            if not isinstance(document, str) or not isinstance(metadata, dict):
                continue
            loaded[item_id] = FallbackItem(document=document, metadata=cast(Dict[str, object], metadata))
        self._fallback_items = loaded

    def _save_fallback(self) -> None:
        serializable = {
            item_id: {"document": item.document, "metadata": item.metadata}
            for item_id, item in self._fallback_items.items()
        }
        with self._fallback_path.open("wb") as fh:
            pickle.dump(serializable, fh)

    def upsert_chunks(self, records: List[ChunkRecord], embeddings: List[List[float]]) -> int:
        """Insert or update chunk records with their embeddings."""
        if len(records) != len(embeddings):
            raise ValueError("records and embeddings must be the same length")
        if not records:
            return 0

        ids = [self._chunk_id(record) for record in records]
        documents = [record.text for record in records]
        metadatas: List[Dict[str, object]] = [
            {"source": record.source, "header": record.header, "chunk_index": record.chunk_index}
            for record in records
        ]

        if self._use_chroma:
            self.collection.upsert(
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )
            return len(ids)

        for item_id, document, metadata in zip(ids, documents, metadatas):
            self._fallback_items[item_id] = FallbackItem(document=document, metadata=metadata)
        self._save_fallback()
        return len(ids)

    def read_chunks(self, document: str) -> List[Chunk]:
        """Return a document's chunks in the order they were stored."""
        rows: List[tuple] = []
        if self._use_chroma:
            raw: Dict[str, Any] = self.collection.get(
                where={"source": document},
                include=["documents", "metadatas"],
            )
            ids = raw.get("ids") or []
            documents = raw.get("documents") or []
            metadatas = raw.get("metadatas") or []
            for item_id, text, metadata in zip(ids, documents, metadatas):
                rows.append((str(item_id), str(text or ""), metadata if isinstance(metadata, dict) else {}))
        else:
            for item_id, item in self._fallback_items.items():
                if item.metadata.get("source") == document:
                    rows.append((item_id, item.document, item.metadata))

        rows.sort(key=lambda row: self._as_int(row[2].get("chunk_index")))
        return [
            Chunk(header=str(metadata.get("header") or ""), body=text, id=item_id)
            for item_id, text, metadata in rows
        ]

    def delete_document(self, document: str) -> None:
        """Remove every chunk stored for ``document``."""
        if self._use_chroma:
            self.collection.delete(where={"source": document})
            return
        self._fallback_items = {
            item_id: item
            for item_id, item in self._fallback_items.items()
            if item.metadata.get("source") != document
        }
        self._save_fallback()

    def count(self) -> int:
        """Return number of stored chunks."""
        if self._use_chroma:
            return int(self.collection.count())
        return len(self._fallback_items)

    def list_documents(self, limit: int = 50) -> List[str]:
        """List unique document names currently stored, sorted."""
        if limit <= 0:
            return []

        sources: List[str] = []
        if self._use_chroma:
            all_items: Dict[str, Any] = self.collection.get(include=["metadatas"])
            raw_metadatas = all_items.get("metadatas") or []
            # Chroma can return list[dict] or list[list[dict]] depending on version.
            flattened: List[object] = []
            for item in raw_metadatas:
                if isinstance(item, list):
                    flattened.extend(item)
                else:
                    flattened.append(item)
            metadatas = [item for item in flattened if isinstance(item, dict)]
        else:
            metadatas = [item.metadata for item in self._fallback_items.values()]

        for metadata in metadatas:
            source = metadata.get("source")
            if isinstance(source, str) and source.strip():
                sources.append(source.strip())
        return sorted(set(sources))[:limit]

    def clear(self) -> None:
        """Delete all chunks from this collection."""
        if self._use_chroma:
            all_items: Dict[str, Any] = self.collection.get()
            ids = all_items.get("ids", [])
            if isinstance(ids, list) and ids:
                self.collection.delete(ids=ids)
            return

        self._fallback_items = {}
        if self._fallback_path.exists():
            self._fallback_path.unlink()
