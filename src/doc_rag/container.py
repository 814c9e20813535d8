"""Composition root: wires concrete components from a :class:`Settings`.

This is the one place where configuration chooses between variants
(embedding backend, chunker, reranker).  Everything downstream depends
only on the capability interfaces.

Examples
--------
>>> from doc_rag.config import Settings
>>> from doc_rag.container import build_rag_service
>>> service = build_rag_service(Settings(reranker="none"))
"""

from __future__ import annotations

import logging

from doc_rag.config import Settings
from doc_rag.ingestion.chunker import Chunker, ChunkerOptions, HtmlChunker, RecursiveChunker
from doc_rag.ingestion.embedder import EmbeddingProvider, huggingface_provider, openai_provider
from doc_rag.retrieval.base import DocumentStore
from doc_rag.retrieval.reranker import CrossEncoderReranker, Reranker
from doc_rag.retrieval.sql_store import SqlDocumentStore
from doc_rag.service import RagService

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    """Create the SQL document store and make sure its tables exist."""
    store = SqlDocumentStore.from_url(settings.database_url, echo=settings.database_echo)
    store.create_schema()
    return store


def build_chunker(settings: Settings) -> Chunker:
    options = ChunkerOptions(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)
    if settings.chunker == "html":
        return HtmlChunker(options)
    return RecursiveChunker(options)


def build_embedder(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "openai":
        return openai_provider(
            settings.embedding_model,
            settings.embedding_dimension,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            batch_size=settings.embedding_batch_size,
            max_workers=settings.embedding_max_workers,
        )
    return huggingface_provider(
        settings.embedding_model,
        settings.embedding_dimension,
        batch_size=settings.embedding_batch_size,
        max_workers=settings.embedding_max_workers,
    )


def build_reranker(settings: Settings) -> Reranker | None:
    if settings.reranker == "none":
        return None
    return CrossEncoderReranker(settings.reranker_model)


def build_rag_service(
    settings: Settings,
    *,
    store: DocumentStore | None = None,
    embedder: EmbeddingProvider | None = None,
    reranker: Reranker | None = None,
) -> RagService:
    """Build a :class:`RagService` from *settings*.

    Explicit *store*, *embedder* or *reranker* arguments replace the
    configured ones (used by tests and custom deployments).
    """
    logger.info(
        "Building RAG service: embeddings=%s/%s, chunker=%s, reranker=%s, top_k=%d",
        settings.embedding_provider,
        settings.embedding_model,
        settings.chunker,
        settings.reranker,
        settings.retrieval_top_k,
    )
    return RagService(
        store or build_store(settings),
        build_chunker(settings),
        embedder or build_embedder(settings),
        reranker if reranker is not None else build_reranker(settings),
        top_k=settings.retrieval_top_k,
        rerank_overfetch=settings.rerank_overfetch,
        chunk_options=ChunkerOptions(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap),
    )
