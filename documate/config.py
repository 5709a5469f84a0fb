"""Configuration values for the chat front-end and the document library."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    """Read a string environment variable with a non-empty fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable with safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime settings loaded from environment variables."""

    # default_factory defers the lookup to Settings() so load_dotenv() runs first.
    chat_api_url: str = field(default_factory=lambda: _env_str("CHAT_API_URL", "http://localhost:3000/api/chat"))
    connect_timeout_seconds: float = field(default_factory=lambda: _env_float("CHAT_CONNECT_TIMEOUT", 10.0))
    turn_timeout_seconds: float = field(default_factory=lambda: _env_float("CHAT_TURN_TIMEOUT", 0.0))
    max_question_chars: int = field(default_factory=lambda: _env_int("MAX_QUESTION_CHARS", 512))
    greeting: str = field(default_factory=lambda: _env_str("CHAT_GREETING", "Hi. What would you like to know?"))
    embedding_model_name: str = field(default_factory=lambda: _env_str("EMBEDDING_MODEL_NAME", "all-MiniLM-L6-v2"))
    chunk_size: int = field(default_factory=lambda: _env_int("CHUNK_SIZE", 400))
    chunk_overlap: int = field(default_factory=lambda: _env_int("CHUNK_OVERLAP", 100))
    chroma_dir: Path = field(default_factory=lambda: Path(_env_str("CHROMA_DIR", "data/chroma")))
    collection_name: str = field(default_factory=lambda: _env_str("CHROMA_COLLECTION", "document_chunks"))
    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "WARNING").upper())


def configure_logging(level: str = "WARNING") -> None:
    """Send log records to stderr with a timestamped single-line format."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
