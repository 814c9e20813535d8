"""Embedding providers.

:class:`EmbeddingProvider` owns the contract shared by every backend:
non-empty input, one vector per input, every vector of the configured
dimension, and all-or-nothing batches.  Batches are split into
sub-batches and fanned out over a thread pool; results are realigned by
position, not by completion order.

Backends are LangChain ``Embeddings`` objects wrapped by
:class:`LangChainEmbeddingProvider`.  :func:`huggingface_provider` and
:func:`openai_provider` build the two supported deployments.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from numbers import Real
from typing import TYPE_CHECKING, Any

from doc_rag.exceptions import EmbeddingFailure, ValidationError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Maps text to fixed-dimension vectors.

    Parameters
    ----------
    dimension:
        Dimension every returned vector must have.
    batch_size:
        Maximum number of texts sent to the backend in one call.
    max_workers:
        Number of sub-batches embedded concurrently.
    """

    def __init__(self, dimension: int, *, batch_size: int = 64, max_workers: int = 4) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension
        self.batch_size = max(1, batch_size)
        self.max_workers = max(1, max_workers)

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def _embed_documents(self, texts: list[str]) -> Sequence[Sequence[float]]:
        """Embed one sub-batch with a single backend call."""
        ...

    @abstractmethod
    def _embed_query(self, text: str) -> Sequence[float]:
        """Embed a single query string."""
        ...

    # -- public API -----------------------------------------------------------

    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises
        ------
        ValidationError
            If *text* is empty.
        EmbeddingFailure
            If the backend errors or returns a malformed vector.
        """
        self._check_texts([text])
        try:
            vector = self._embed_query(text)
        except Exception as exc:
            logger.error("Embedding backend failed for query: %s", exc)
            raise EmbeddingFailure("Failed to embed query") from exc
        return self._check_vector(vector)

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one embedding per text, aligned with *texts* by position.

        The whole call fails if any sub-batch fails; partial results are
        never returned.
        """
        texts = list(texts)
        if not texts:
            return []
        self._check_texts(texts)

        batches = [texts[i : i + self.batch_size] for i in range(0, len(texts), self.batch_size)]
        try:
            if len(batches) == 1:
                results = [self._embed_documents(batches[0])]
            else:
                with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batches))) as pool:
                    # map() yields in submission order, whatever the completion order.
                    results = list(pool.map(self._embed_documents, batches))
        except Exception as exc:
            logger.error("Embedding backend failed for batch of %d texts: %s", len(texts), exc)
            raise EmbeddingFailure(f"Failed to embed {len(texts)} texts") from exc

        vectors: list[list[float]] = []
        for batch, result in zip(batches, results):
            result = list(result)
            if len(result) != len(batch):
                raise EmbeddingFailure(
                    f"Embedding backend returned {len(result)} vectors for {len(batch)} texts"
                )
            vectors.extend(self._check_vector(v) for v in result)

        logger.info("Embedded %d texts in %d batches (dim=%d)", len(texts), len(batches), self.dimension)
        return vectors

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _check_texts(texts: Sequence[str]) -> None:
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise ValidationError(f"Text at position {i} is empty")

    def _check_vector(self, vector: Any) -> list[float]:
        try:
            values = list(vector)
        except TypeError as exc:
            raise EmbeddingFailure("Embedding backend returned a non-sequence vector") from exc
        if len(values) != self.dimension:
            raise EmbeddingFailure(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(values)}"
            )
        if not all(isinstance(v, Real) and not isinstance(v, bool) and math.isfinite(v) for v in values):
            raise EmbeddingFailure("Embedding backend returned non-numeric values")
        return [float(v) for v in values]


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapter around any LangChain ``Embeddings`` implementation."""

    def __init__(
        self,
        embeddings: Embeddings,
        dimension: int,
        *,
        batch_size: int = 64,
        max_workers: int = 4,
    ) -> None:
        super().__init__(dimension, batch_size=batch_size, max_workers=max_workers)
        self._embeddings = embeddings

    def _embed_documents(self, texts: list[str]) -> Sequence[Sequence[float]]:
        return self._embeddings.embed_documents(texts)

    def _embed_query(self, text: str) -> Sequence[float]:
        return self._embeddings.embed_query(text)


def huggingface_provider(
    model_name: str,
    dimension: int,
    *,
    batch_size: int = 64,
    max_workers: int = 4,
) -> LangChainEmbeddingProvider:
    """Sentence-transformer embeddings, L2-normalised for cosine distance."""
    from langchain_huggingface import HuggingFaceEmbeddings

    embeddings = HuggingFaceEmbeddings(
        model_name=model_name,
        encode_kwargs={"normalize_embeddings": True},
    )
    return LangChainEmbeddingProvider(
        embeddings, dimension, batch_size=batch_size, max_workers=max_workers
    )


def openai_provider(
    model_name: str,
    dimension: int,
    *,
    api_key: str = "",
    base_url: str = "",
    batch_size: int = 64,
    max_workers: int = 4,
) -> LangChainEmbeddingProvider:
    """OpenAI (or OpenAI-compatible) embeddings truncated to *dimension*."""
    from langchain_openai import OpenAIEmbeddings

    kwargs: dict[str, Any] = {"model": model_name, "dimensions": dimension}
    if api_key:
        kwargs["api_key"] = api_key
    if base_url:
        logger.info("Using OpenAI-compatible embedding endpoint: %s", base_url)
        kwargs["base_url"] = base_url

    return LangChainEmbeddingProvider(
        OpenAIEmbeddings(**kwargs), dimension, batch_size=batch_size, max_workers=max_workers
    )
