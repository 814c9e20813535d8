"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from doc_rag.ingestion.chunker import ChunkerOptions, RecursiveChunker
from doc_rag.ingestion.embedder import EmbeddingProvider
from doc_rag.retrieval.sql_store import SqlDocumentStore
from doc_rag.service import RagService


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake embedding backend ──────────────────────────────────────────────

VOCABULARY = ["apples", "bananas", "cherries", "enrollment", "tuition", "hello", "world"]


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-keywords embeddings over :data:`VOCABULARY`.

    The last component is a constant bias so no vector is all zeros.
    Set ``fail = True`` to make every backend call raise.
    """

    def __init__(self, *, batch_size: int = 64) -> None:
        super().__init__(len(VOCABULARY) + 1, batch_size=batch_size)
        self.fail = False
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        words = text.lower().replace(".", " ").replace(",", " ").split()
        return [float(words.count(term)) for term in VOCABULARY] + [1.0]

    def _embed_documents(self, texts: list[str]) -> Sequence[Sequence[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise ConnectionError("embedding backend unreachable")
        return [self._vector(t) for t in texts]

    def _embed_query(self, text: str) -> Sequence[float]:
        self.calls.append([text])
        if self.fail:
            raise ConnectionError("embedding backend unreachable")
        return self._vector(text)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def store(tmp_path: Path) -> SqlDocumentStore:
    sql_store = SqlDocumentStore.from_url(f"sqlite:///{tmp_path / 'rag.db'}")
    sql_store.create_schema()
    return sql_store


@pytest.fixture()
def embedder() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture()
def service(store: SqlDocumentStore, embedder: KeywordEmbeddingProvider) -> RagService:
    options = ChunkerOptions(chunk_size=120, chunk_overlap=20)
    return RagService(store, RecursiveChunker(options), embedder, top_k=3, chunk_options=options)
