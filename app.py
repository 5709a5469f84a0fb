from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Sequence, cast

import streamlit as st
from dotenv import load_dotenv

from documate.chat import ChatSession
from documate.config import Settings, configure_logging
from documate.display import avatar_for, format_source_document, source_heading
from documate.embeddings import ChunkEmbedder
from documate.errors import ValidationError
from documate.library import DocumentLibrary
from documate.session import SessionSnapshot
from documate.store import ChunkStore
from documate.types import SourceDocument

# Load environment variables from .env if present.
load_dotenv()
settings = Settings()
configure_logging(settings.log_level)

st.set_page_config(
    page_title="Documate Chat",
    page_icon="🧠",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap');

.stApp {
    font-family: 'Inter', sans-serif;
}

.hero-header {
    text-align: center;
    padding: 2rem 1rem 1.5rem;
    margin-bottom: 1rem;
}
.hero-header h1 {
    font-size: 2.6rem;
    font-weight: 700;
    background: linear-gradient(135deg, #10B981, #34D399, #A3E635);
    -webkit-background-clip: text;
    -webkit-text-fill-color: transparent;
    background-clip: text;
    margin-bottom: 0.35rem;
}
.hero-header p {
    color: #A1AEBB;
    font-size: 0.95rem;
    margin: 0;
}

.section-header {
    font-size: 1.15rem;
    font-weight: 600;
    color: #E8F5E9;
    margin-bottom: 0.6rem;
}

.sidebar-metric {
    padding: 0.5rem 0.75rem;
    border-radius: 10px;
    background: rgba(16, 185, 129, 0.08);
    margin-bottom: 0.5rem;
}
.sidebar-metric-label {
    font-size: 0.75rem;
    color: #A1AEBB;
}
.sidebar-metric-value {
    font-size: 1.05rem;
    font-weight: 600;
}
</style>
""",
    unsafe_allow_html=True,
)

st.markdown(
    """
<div class="hero-header">
    <h1>🧠 Documate Chat</h1>
    <p>Ask questions about your documents and see the passages behind every answer</p>
</div>
""",
    unsafe_allow_html=True,
)


@st.cache_resource(show_spinner=False)
def get_chunk_store(chroma_dir: str, collection_name: str) -> ChunkStore:
    """Open the persistent chunk store once and reuse it across reruns."""
    return ChunkStore(Path(chroma_dir), collection_name)


@st.cache_resource(show_spinner=False)
def get_embedder(model_name: str) -> ChunkEmbedder:
    """Load the embedding model only when a document is ingested."""
    return ChunkEmbedder(model_name)


def get_chat_session() -> ChatSession:
    """Read or create the chat session of this browser tab."""
    session = st.session_state.get("chat_session")
    if not isinstance(session, ChatSession):
        session = ChatSession(settings)
        st.session_state["chat_session"] = session
    return session


def render_source_documents(documents: Optional[Sequence[SourceDocument]]) -> None:
    """Show the passages an answer was based on, one expander per source."""
    if not documents:
        return
    for index, document in enumerate(documents):
        body, source = format_source_document(document)
        with st.expander(source_heading(index), expanded=False):
            st.markdown(body)
            if source:
                st.markdown(f"**Source:** {source}")


def render_conversation(snapshot: SessionSnapshot) -> None:
    with st.chat_message("assistant", avatar=avatar_for("assistant")):
        st.markdown(settings.greeting)
    for message in snapshot.visible_messages:
        with st.chat_message(message.type, avatar=avatar_for(message.type)):
            st.markdown(message.text)
        if message.type == "assistant":
            render_source_documents(message.source_documents)


async def stream_answer(session: ChatSession, question: str) -> None:
    """Submit the question and redraw the partial answer on every update."""
    session.submitter.submit(question)
    with st.chat_message("user", avatar=avatar_for("user")):
        st.markdown(question.strip())
    with st.chat_message("assistant", avatar=avatar_for("assistant")):
        placeholder = st.empty()

    def redraw(snapshot: SessionSnapshot) -> None:
        if snapshot.pending_text:
            placeholder.markdown(snapshot.pending_text + "▌")

    unsubscribe = session.state.subscribe(redraw)
    try:
        with st.spinner("Waiting for response..."):
            await session.controller.wait()
    finally:
        unsubscribe()


def ingest_uploads(uploaded_files: List[Any], library: DocumentLibrary) -> None:
    """Store uploaded files in the chunk store and report per-file results."""
    with st.spinner("⏳ Parsing, sectioning and storing..."):
        for uploaded in uploaded_files:
            suffix = Path(str(uploaded.name)).suffix
            with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp_file:
                tmp_file.write(uploaded.getbuffer())
                tmp_path = Path(tmp_file.name)
            try:
                stored = library.ingest_file(tmp_path, source_name=str(uploaded.name))
                if stored:
                    st.success(f"📄 {uploaded.name}: {stored} chunks")
                else:
                    st.warning(f"No extractable text found in {uploaded.name}.")
            except Exception as exc:
                st.error(f"{uploaded.name}: {exc}")
            finally:
                tmp_path.unlink(missing_ok=True)


# ──────────────────── Initialize ────────────────────
try:
    store = get_chunk_store(str(settings.chroma_dir), settings.collection_name)
except Exception as exc:
    st.error(f"Failed to open the chunk store: {exc}")
    st.stop()

library = DocumentLibrary(settings=settings, store=store)
chat_session = get_chat_session()

# ──────────────────── Sidebar ────────────────────
with st.sidebar:
    st.markdown("## 📚 Documents")
    st.markdown(
        f'<div class="sidebar-metric">'
        f'<div class="sidebar-metric-label">Answer Service</div>'
        f'<div class="sidebar-metric-value"><code>{settings.chat_api_url}</code></div>'
        f"</div>",
        unsafe_allow_html=True,
    )
    st.markdown(
        f'<div class="sidebar-metric">'
        f'<div class="sidebar-metric-label">Stored Chunks</div>'
        f'<div class="sidebar-metric-value">{store.count()}</div>'
        f"</div>",
        unsafe_allow_html=True,
    )
    if store.backend_name == "fallback":
        st.warning("Chroma could not be loaded. Using local fallback store.")

    document_names = library.documents()
    selected_document = st.selectbox(
        "Open a document",
        options=[""] + document_names,
        format_func=lambda name: name or "-",
    )

    uploaded_files = cast(
        List[Any],
        st.file_uploader(
            "Add PDF, TXT or Markdown files",
            type=["pdf", "txt", "md"],
            accept_multiple_files=True,
        )
        or [],
    )
    if st.button("⚡ Ingest", disabled=not uploaded_files, use_container_width=True):
        ingest_library = DocumentLibrary(
            settings=settings,
            store=store,
            embedder=get_embedder(settings.embedding_model_name),
        )
        ingest_uploads(uploaded_files, ingest_library)

    st.markdown("---")
    if st.button("🧹 New conversation", use_container_width=True):
        chat_session.cancel()
        st.session_state["chat_session"] = ChatSession(settings)
        st.rerun()

# ──────────────────── Document viewer ────────────────────
if selected_document:
    st.markdown(f'<div class="section-header">📄 {selected_document}</div>', unsafe_allow_html=True)
    for chunk in library.read_document(selected_document):
        with st.expander(chunk.label or "Untitled section", expanded=False):
            st.markdown(chunk.body)
    st.markdown("---")

# ──────────────────── Chat ────────────────────
st.markdown('<div class="section-header">💬 Ask Questions</div>', unsafe_allow_html=True)

snapshot = chat_session.state.snapshot()
render_conversation(snapshot)

if snapshot.last_error:
    st.error(snapshot.last_error)

question = st.chat_input(
    "Waiting for response..." if snapshot.loading else "Please provide a question",
    max_chars=settings.max_question_chars,
    disabled=snapshot.loading,
)
if question is not None:
    try:
        asyncio.run(stream_answer(chat_session, question))
    except ValidationError as exc:
        st.warning(str(exc))
    else:
        st.rerun()
