"""Optional re-ranking step applied after coarse vector retrieval.

A reranker only reorders / narrows a candidate set that was already
over-fetched from the store; it never runs on the full corpus.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from doc_rag.exceptions import RerankFailure
from doc_rag.retrieval.models import DocumentChunk

logger = logging.getLogger(__name__)


class Reranker(ABC):
    """Re-scores candidates against a query with a relevance model."""

    def rerank(self, candidates: Sequence[DocumentChunk], query: str, limit: int) -> list[DocumentChunk]:
        """Return the top *limit* candidates in descending relevance order.

        Candidates are returned unchanged; only their order and the
        subset differ.  *limit* is clamped to ``len(candidates)``.

        Raises
        ------
        RerankFailure
            If the backend errors or returns invalid indices.
        """
        limit = min(limit, len(candidates))
        if limit <= 0:
            return []

        texts = [c.chunk for c in candidates]
        try:
            selected = list(self._select(query, texts, limit))
        except RerankFailure:
            raise
        except Exception as exc:
            logger.error("Reranking backend failed: %s", exc)
            raise RerankFailure("Failed to rerank candidates") from exc

        seen: set[int] = set()
        for index in selected:
            if not isinstance(index, int) or not 0 <= index < len(candidates) or index in seen:
                raise RerankFailure(f"Reranking backend returned invalid index {index!r}")
            seen.add(index)

        return [candidates[i] for i in selected[:limit]]

    @abstractmethod
    def _select(self, query: str, texts: list[str], limit: int) -> Sequence[int]:
        """Return indices into *texts*, most relevant first, at most *limit* of them."""
        ...


class CrossEncoderReranker(Reranker):
    """Reranker backed by a sentence-transformers cross-encoder.

    Parameters
    ----------
    model_name:
        HuggingFace cross-encoder id.
    model:
        Pre-built model exposing ``rank(query, documents, top_k=...)``;
        when *None* the cross-encoder is loaded on first use.
    """

    def __init__(
        self,
        model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2",
        *,
        model: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self._model = model
        self._load_lock = threading.Lock()

    def _get_model(self) -> Any:
        if self._model is None:
            with self._load_lock:
                if self._model is None:
                    self._model = self._load_model()
        return self._model

    def _load_model(self) -> Any:
        from sentence_transformers import CrossEncoder

        logger.info("Loading cross-encoder %s", self.model_name)
        return CrossEncoder(self.model_name)

    def _select(self, query: str, texts: list[str], limit: int) -> Sequence[int]:
        ranked = self._get_model().rank(query, texts, top_k=limit)
        return [int(hit["corpus_id"]) for hit in ranked]
