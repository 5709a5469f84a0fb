from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from documate.chat import ChatSession
from documate.config import Settings, configure_logging
from documate.display import format_source_document, source_heading, truncate
from documate.embeddings import ChunkEmbedder
from documate.errors import ValidationError
from documate.ingestion import SUPPORTED_SUFFIXES
from documate.library import DocumentLibrary
from documate.session import SessionSnapshot
from documate.store import ChunkStore
from documate.types import SourceDocument


def _build_library(settings: Settings, require_embedding: bool = False) -> DocumentLibrary:
    """Create a document library for CLI commands."""
    embedder = None
    if require_embedding:
        embedder = ChunkEmbedder(settings.embedding_model_name)
    store = ChunkStore(settings.chroma_dir, settings.collection_name)
    if store.backend_name == "fallback":
        print(
            "Warning: Chroma backend unavailable. Using local fallback store.",
            file=sys.stderr,
        )
        if store.backend_error:
            print(f"Backend error: {store.backend_error}", file=sys.stderr)
    return DocumentLibrary(settings=settings, store=store, embedder=embedder)


def _print_sources(documents: Optional[Sequence[SourceDocument]], max_chars: int = 240) -> None:
    """Print the source documents attached to an answer."""
    if not documents:
        print("No source documents returned.")
        return

    print("\nSources:")
    for idx, document in enumerate(documents):
        body, source = format_source_document(document)
        print(f"[{source_heading(idx)}] {source or 'unknown'}")
        print(f"    {truncate(body, max_chars)}")


class _TerminalRenderer:
    """Prints the streamed answer as it grows."""

    def __init__(self) -> None:
        self.printed = 0

    def __call__(self, snapshot: SessionSnapshot) -> None:
        pending = snapshot.pending_text or ""
        if len(pending) > self.printed:
            print(pending[self.printed :], end="", flush=True)
            self.printed = len(pending)
        elif snapshot.pending_text is None:
            self.printed = 0


async def _run_turn(session: ChatSession, question: str, show_sources: bool, source_chars: int) -> int:
    renderer = _TerminalRenderer()
    answered_before = len(session.state.history)
    try:
        session.submitter.submit(question)
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    print("\nAssistant>")
    unsubscribe = session.state.subscribe(renderer)
    try:
        await session.controller.wait()
    finally:
        unsubscribe()
    print()

    if session.state.last_error:
        print(session.state.last_error, file=sys.stderr)
    if len(session.state.history) == answered_before:
        return 1
    if show_sources:
        _print_sources(session.state.messages[-1].source_documents, max_chars=source_chars)
    return 0


def _resolve_input_files(paths: List[str]) -> List[Path]:
    """Validate and normalize input file paths."""
    resolved: List[Path] = []
    for raw in paths:
        path = Path(raw).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if not path.is_file():
            raise ValueError(f"Not a file: {path}")
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported file type: {path.suffix} ({path})")
        resolved.append(path)
    return resolved


def command_ingest(args: argparse.Namespace, settings: Settings) -> int:
    """Ingest one or more documents into the chunk store."""
    try:
        files = _resolve_input_files(args.files)
    except (OSError, ValueError) as exc:
        print(f"Input validation error: {exc}", file=sys.stderr)
        return 2

    library = _build_library(settings, require_embedding=True)
    total_chunks = 0
    failed: List[str] = []

    for file_path in files:
        try:
            chunk_count = library.ingest_file(file_path, source_name=file_path.name)
            total_chunks += chunk_count
            print(f"Ingested {file_path.name}: {chunk_count} chunks")
        except Exception as exc:
            failed.append(f"{file_path.name}: {exc}")

    print(f"\nTotal chunks stored/updated: {total_chunks}")
    if failed:
        print("Ingestion failures:", file=sys.stderr)
        for item in failed:
            print(f"- {item}", file=sys.stderr)
        return 1
    return 0


def command_documents(args: argparse.Namespace, settings: Settings) -> int:
    """List stored documents."""
    library = _build_library(settings)
    names = library.documents(limit=args.limit)
    if not names:
        print("No documents stored. Run ingest first.")
        return 0
    for name in names:
        print(name)
    return 0


def command_show(args: argparse.Namespace, settings: Settings) -> int:
    """Print a stored document section by section."""
    library = _build_library(settings)
    chunks = library.read_document(args.document)
    if not chunks:
        print(f"No chunks stored for {args.document}.", file=sys.stderr)
        return 1
    for chunk in chunks:
        print(f"## {chunk.label}")
        print(chunk.body if args.full else truncate(chunk.body, args.chars))
        print()
    return 0


def command_ask(args: argparse.Namespace, settings: Settings) -> int:
    """Stream the answer to a single question."""
    session = ChatSession(settings)
    return asyncio.run(_run_turn(session, args.question, args.show_sources, args.source_chars))


async def _chat_loop(session: ChatSession, show_sources: bool, source_chars: int) -> int:
    print(f"Assistant> {session.settings.greeting}")
    print("Type 'exit' or 'quit' to stop.")
    while True:
        try:
            question = await asyncio.to_thread(input, "\nYou> ")
        except EOFError:
            print("\nExiting chat.")
            break

        if question.strip().lower() in {"exit", "quit"}:
            print("Exiting chat.")
            break
        await _run_turn(session, question, show_sources, source_chars)
    return 0


def command_chat(args: argparse.Namespace, settings: Settings) -> int:
    """Start an interactive conversation in the terminal."""
    session = ChatSession(settings)
    try:
        return asyncio.run(_chat_loop(session, args.show_sources, args.source_chars))
    except KeyboardInterrupt:
        session.cancel()
        print("\nExiting chat.")
        return 0


def command_stats(_: argparse.Namespace, settings: Settings) -> int:
    """Show stored chunk count."""
    library = _build_library(settings)
    print(f"Stored chunks: {library.store.count()}")
    print(f"Documents: {len(library.documents(limit=10_000))}")
    print(f"Chroma directory: {settings.chroma_dir}")
    print(f"Collection: {settings.collection_name}")
    print(f"Answer service: {settings.chat_api_url}")
    return 0


def command_clear(_: argparse.Namespace, settings: Settings) -> int:
    """Clear all chunks from the configured collection."""
    library = _build_library(settings)
    library.store.clear()
    print("Chunk store cleared.")
    return 0


def _add_source_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--show-sources",
        action="store_true",
        help="Print the source documents attached to each answer",
    )
    parser.add_argument(
        "--source-chars",
        type=int,
        default=240,
        help="Max characters shown per source document",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(description="Documate chat and document library CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_parser = subparsers.add_parser("ingest", help="Ingest PDF/TXT/Markdown files into the chunk store")
    ingest_parser.add_argument("files", nargs="+", help="One or more .pdf/.txt/.md files")

    documents_parser = subparsers.add_parser("documents", help="List stored documents")
    documents_parser.add_argument("--limit", type=int, default=50, help="Maximum number of documents listed")

    show_parser = subparsers.add_parser("show", help="Print a stored document with section labels")
    show_parser.add_argument("document", help="Document name as listed by 'documents'")
    show_parser.add_argument("--full", action="store_true", help="Print whole chunks")
    show_parser.add_argument("--chars", type=int, default=240, help="Max characters shown per chunk")

    ask_parser = subparsers.add_parser("ask", help="Ask one question and stream the answer")
    ask_parser.add_argument("question", help="Question text")
    _add_source_flags(ask_parser)

    chat_parser = subparsers.add_parser("chat", help="Start an interactive conversation")
    _add_source_flags(chat_parser)

    subparsers.add_parser("stats", help="Show chunk store statistics")
    subparsers.add_parser("clear", help="Clear all chunks from the current collection")
    return parser


COMMANDS = {
    "ingest": command_ingest,
    "documents": command_documents,
    "show": command_show,
    "ask": command_ask,
    "chat": command_chat,
    "stats": command_stats,
    "clear": command_clear,
}


def main() -> int:
    """CLI entrypoint."""
    load_dotenv()
    settings = Settings()
    configure_logging(settings.log_level)
    parser = build_arg_parser()
    args = parser.parse_args()

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 2
    return command(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())
