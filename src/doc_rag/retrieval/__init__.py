"""
Retrieval — document storage, similarity search, and re-ranking.

The orchestrator talks to storage only through :class:`DocumentStore`,
so the relational backend can be swapped without touching the flows.

Public surface
--------------
- :class:`DocumentStore` — abstract transactional document + chunk store.
- :class:`SqlDocumentStore` — default SQLAlchemy backend (SQLite / libSQL).
- :class:`Reranker`, :class:`CrossEncoderReranker` — optional second stage.
- :class:`Document`, :class:`DocumentChunk`, :class:`Page` … — data models.
"""

from doc_rag.retrieval.base import DocumentStore
from doc_rag.retrieval.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
    Page,
)
from doc_rag.retrieval.reranker import CrossEncoderReranker, Reranker

__all__ = [
    "ChunkCreate",
    "CrossEncoderReranker",
    "Document",
    "DocumentChunk",
    "DocumentCreate",
    "DocumentStore",
    "DocumentUpdate",
    "Page",
    "Reranker",
    "SqlDocumentStore",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import SqlDocumentStore to avoid pulling in SQLAlchemy at import time."""
    if name == "SqlDocumentStore":
        from doc_rag.retrieval.sql_store import SqlDocumentStore

        return SqlDocumentStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
