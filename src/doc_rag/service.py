"""Retrieval orchestrator: the ingest and query flows end to end.

Ingest::

    content → sanitize → chunk → embed_batch → store (one transaction)

Query::

    query → embed → store top-N → rerank to top-K

Usage::

    from doc_rag.config import Settings
    from doc_rag.container import build_rag_service

    service = build_rag_service(Settings())
    doc_id = service.insert_document("<p>Enrollment opens in May.</p>")
    for chunk in service.get_relevant_chunks("When does enrollment open?"):
        print(chunk.document_id, chunk.chunk[:80])
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from doc_rag.exceptions import NotFoundError, ValidationError
from doc_rag.ingestion.chunker import Chunk, Chunker, ChunkerOptions
from doc_rag.ingestion.embedder import EmbeddingProvider
from doc_rag.ingestion.sanitizer import sanitize_html
from doc_rag.retrieval.base import DocumentStore
from doc_rag.retrieval.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
    Page,
)
from doc_rag.retrieval.reranker import Reranker

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RagService:
    """Composes chunker, embedder, store and (optionally) reranker.

    Parameters
    ----------
    store:
        Document store receiving every write and similarity query.
    chunker:
        Splits sanitized content into passages.
    embedder:
        Embeds passages (batch) and queries (single).
    reranker:
        Optional second-stage reranker.  Without one, the store's top
        ``top_k`` is returned directly.
    top_k:
        Number of passages returned by :meth:`get_relevant_chunks`.
    rerank_overfetch:
        With a reranker, ``top_k * rerank_overfetch`` candidates are
        fetched from the store before reranking.
    chunk_options:
        Size / overlap policy passed to the chunker.
    """

    def __init__(
        self,
        store: DocumentStore,
        chunker: Chunker,
        embedder: EmbeddingProvider,
        reranker: Reranker | None = None,
        *,
        top_k: int = 5,
        rerank_overfetch: int = 4,
        chunk_options: ChunkerOptions | None = None,
    ) -> None:
        if top_k <= 0:
            raise ValueError(f"top_k must be positive, got {top_k}")
        if rerank_overfetch < 1:
            raise ValueError(f"rerank_overfetch must be >= 1, got {rerank_overfetch}")
        self._store = store
        self._chunker = chunker
        self._embedder = embedder
        self._reranker = reranker
        self.top_k = top_k
        self.rerank_overfetch = rerank_overfetch
        self.chunk_options = chunk_options

    @property
    def store(self) -> DocumentStore:
        return self._store

    # -- mutations ------------------------------------------------------------

    def insert_document(self, content: str) -> int:
        """Sanitize, chunk, embed and persist *content*; return the new id.

        Raises
        ------
        ValidationError
            If *content* is empty, or nothing is left after sanitizing.
        EmbeddingFailure
            If embedding fails; nothing is written in that case.
        StoreError
            If the transactional write fails.
        """
        sanitized, chunks = self._prepare(content)
        now = _utcnow()
        document_id = self._store.save_document(
            DocumentCreate(content=sanitized, created_at=now, updated_at=now, chunks=chunks)
        )
        logger.info("Inserted document %d (%d chunks)", document_id, len(chunks))
        return document_id

    def update_document(self, document_id: int, content: str) -> None:
        """Replace a document's content and its entire chunk set.

        Raises
        ------
        ValidationError
            If *document_id* or *content* is invalid; checked before any
            store or embedding call.
        NotFoundError
            If no document has *document_id*.
        """
        self._check_id(document_id)
        if not content:
            raise ValidationError("Content must not be empty")
        if self._store.get_document_by_id(document_id) is None:
            raise NotFoundError(f"Document {document_id} not found")

        sanitized, chunks = self._prepare(content)
        replaced = self._store.update_document(
            DocumentUpdate(id=document_id, content=sanitized, updated_at=_utcnow(), chunks=chunks)
        )
        if not replaced:
            # Deleted between the existence check and the write.
            raise NotFoundError(f"Document {document_id} not found")
        logger.info("Updated document %d (%d chunks)", document_id, len(chunks))

    def delete_document(self, document_id: int) -> bool:
        """Delete a document and its chunks; ``False`` if it did not exist."""
        self._check_id(document_id)
        deleted = self._store.delete_document(document_id)
        if not deleted:
            logger.warning("Delete requested for missing document %d", document_id)
        return deleted

    # -- reads ----------------------------------------------------------------

    def get_document_by_id(self, document_id: int) -> Document | None:
        self._check_id(document_id)
        return self._store.get_document_by_id(document_id)

    def list_documents(self, page: int = 1, page_size: int = 20) -> Page[Document]:
        return self._store.list_documents(page, page_size)

    def get_relevant_chunks(self, query: str) -> list[DocumentChunk]:
        """Return the passages most relevant to *query*, best first."""
        if not query or not query.strip():
            raise ValidationError("Query must not be empty")

        query_vector = self._embedder.embed(query)
        if self._reranker is None:
            return self._store.get_relevant_chunks(query_vector, self.top_k)

        candidates = self._store.get_relevant_chunks(query_vector, self.top_k * self.rerank_overfetch)
        ranked = self._reranker.rerank(candidates, query, self.top_k)
        logger.info("Reranked %d candidates down to %d passages", len(candidates), len(ranked))
        return ranked

    # -- internals ------------------------------------------------------------

    def _prepare(self, content: str) -> tuple[str, list[ChunkCreate]]:
        if not content:
            raise ValidationError("Content must not be empty")

        sanitized = sanitize_html(content)
        if not sanitized.strip():
            raise ValidationError("Content is empty after sanitization")

        chunks = self._chunker.chunk(sanitized, self.chunk_options)
        if not chunks:
            raise ValidationError("Content produced no passages")

        embeddings = self._embedder.embed_batch([c.content for c in chunks])
        return sanitized, [
            ChunkCreate(chunk=c.content, metadata=self._encode_metadata(c), embedding=vector)
            for c, vector in zip(chunks, embeddings)
        ]

    @staticmethod
    def _encode_metadata(chunk: Chunk) -> str | None:
        return json.dumps(chunk.metadata, sort_keys=True) if chunk.metadata else None

    @staticmethod
    def _check_id(document_id: int) -> None:
        if isinstance(document_id, bool) or not isinstance(document_id, int) or document_id <= 0:
            raise ValidationError(f"Invalid document id: {document_id!r}")
