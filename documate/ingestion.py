"""Turning documents into header-tagged chunks for the document store."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import pdfplumber

SUPPORTED_SUFFIXES = {".pdf", ".txt", ".md"}

_HEADING_PATTERN = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")


@dataclass
class ChunkRecord:
    """A chunk ready to be stored, with the section header it came from."""

    header: str
    text: str
    source: str
    chunk_index: int


def extract_text_from_pdf(file_path: Path) -> str:
    """Extract plain text from a PDF file page by page.

    Uses pdfplumber first. If no text is found, tries PyMuPDF when it is installed.
    """
    page_text_parts: List[str] = []
    with pdfplumber.open(file_path) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text() or ""
            if page_text.strip():
                page_text_parts.append(page_text.strip())
    text = "\n".join(page_text_parts).strip()
    if text:
        return text

    try:
        import fitz  # type: ignore
    except ImportError:
        return ""

    fallback_parts: List[str] = []
    with fitz.open(file_path) as doc:
        for page in doc:
            page_text = page.get_text("text") or ""
            if page_text.strip():
                fallback_parts.append(page_text.strip())
    return "\n".join(fallback_parts).strip()


def extract_text(file_path: Path) -> str:
    """Extract raw text from supported file types."""
    suffix = file_path.suffix.lower()
    if suffix == ".pdf":
        return extract_text_from_pdf(file_path)
    if suffix in {".txt", ".md"}:
        return file_path.read_text(encoding="utf-8", errors="ignore").strip()
    raise ValueError(f"Unsupported file type: {suffix}")


def _normalize_text(text: str) -> str:
    """Collapse blank-line runs and spacing, and straighten typographic quotes."""
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = text.replace("\u00a0", " ")
    text = text.replace("\u2019", "'").replace("\u2018", "'")
    text = text.replace("\u201c", '"').replace("\u201d", '"')
    return text.strip()


def _split_into_sentences(text: str) -> List[str]:
    """Split on sentence punctuation followed by a capital, or on paragraph breaks."""
    sentence_pattern = r"(?<=[.!?])\s+(?=[A-Z\"\'\(\[])|(?:\n\n+)"
    return [part.strip() for part in re.split(sentence_pattern, text) if part.strip()]


def split_sections(text: str, default_header: str) -> List[Tuple[str, str]]:
    """Split Markdown-style text into ``(header, body)`` sections.

    Lines starting with one to six ``#`` open a new section. Text before the
    first heading is filed under ``default_header``. Sections without body
    text are dropped.
    """
    sections: List[Tuple[str, str]] = []
    header = default_header
    body_lines: List[str] = []

    def flush() -> None:
        body = "\n".join(body_lines).strip()
        if body:
            sections.append((header, body))

    for line in text.splitlines():
        match = _HEADING_PATTERN.match(line)
        if match:
            flush()
            header = match.group("title").strip()
            body_lines = []
        else:
            body_lines.append(line)
    flush()
    return sections


def sliding_window_chunk_text(text: str, chunk_size: int = 400, chunk_overlap: int = 100) -> List[str]:
    """Split text into overlapping chunks made of whole sentences.

    Each window takes sentences while they fit in ``chunk_size`` words; a
    sentence longer than that becomes a window of its own. The next window
    starts with as many trailing sentences of the previous one as fit in
    ``chunk_overlap`` words, so the overlap may be empty.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than 0")
    if chunk_overlap < 0:
        raise ValueError("chunk_overlap must be non-negative")
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    sentences = _split_into_sentences(_normalize_text(text))
    counts = [len(sentence.split()) for sentence in sentences]
    chunks: List[str] = []
    start = 0
    while start < len(sentences):
        end, size = start + 1, counts[start]
        while end < len(sentences) and size + counts[end] <= chunk_size:
            size += counts[end]
            end += 1
        chunks.append(" ".join(sentences[start:end]))
        if end == len(sentences):
            break

        next_start, overlap = end, 0
        while next_start - 1 > start and overlap + counts[next_start - 1] <= chunk_overlap:
            next_start -= 1
            overlap += counts[next_start]
        start = next_start
    return chunks


def ingest_document(
    file_path: Path,
    chunk_size: int = 400,
    chunk_overlap: int = 100,
    source_name: Optional[str] = None,
) -> List[ChunkRecord]:
    """Load a document and convert it to header-tagged chunk records.

    A section longer than ``chunk_size`` words becomes several consecutive
    records sharing its header.
    """
    raw_text = extract_text(file_path)
    if not raw_text.strip():
        return []

    source = source_name or file_path.name
    records: List[ChunkRecord] = []
    for header, body in split_sections(raw_text, default_header=Path(source).stem):
        for chunk_text in sliding_window_chunk_text(body, chunk_size=chunk_size, chunk_overlap=chunk_overlap):
            records.append(ChunkRecord(header=header, text=chunk_text, source=source, chunk_index=len(records)))
    return records
