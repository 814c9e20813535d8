"""Abstract base class for document-store backends.

Adding a new backend (Postgres + pgvector, DuckDB …) only requires
subclassing :class:`DocumentStore` and implementing the abstract methods.
The orchestrator depends on this interface alone.

Every mutation (:meth:`~DocumentStore.save_document`,
:meth:`~DocumentStore.update_document`, :meth:`~DocumentStore.delete_document`)
must be a single transaction: readers never observe a document whose
chunk set is partially written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from doc_rag.retrieval.models import (
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
    Page,
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_page(page: object, page_size: object) -> tuple[int, int]:
    """Coerce pagination input into ``page >= 1`` and ``1 <= page_size <= 100``.

    Non-numeric values fall back to page 1 and the default page size
    instead of raising.
    """
    try:
        current = max(1, int(page))  # type: ignore[call-overload]
    except (TypeError, ValueError):
        current = 1
    try:
        size = max(1, min(MAX_PAGE_SIZE, int(page_size)))  # type: ignore[call-overload]
    except (TypeError, ValueError):
        size = DEFAULT_PAGE_SIZE
    return current, size


class DocumentStore(ABC):
    """Backend-agnostic document + chunk store."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def save_document(self, document: DocumentCreate) -> int:
        """Insert the document and all of its chunks; return the new id.

        On any failure nothing is persisted and the error propagates.
        """
        ...

    @abstractmethod
    def update_document(self, document: DocumentUpdate) -> bool:
        """Replace content, timestamp and the full chunk set of a document.

        Returns ``False`` (and changes nothing) when no document has
        ``document.id``.
        """
        ...

    @abstractmethod
    def delete_document(self, document_id: int) -> bool:
        """Delete a document and its chunks; ``False`` when it did not exist."""
        ...

    @abstractmethod
    def get_document_by_id(self, document_id: int) -> Document | None:
        """Return the document without chunk payload, or ``None``."""
        ...

    @abstractmethod
    def list_documents(self, page: int, page_size: int) -> Page[Document]:
        """Return one page of documents, most recently created first."""
        ...

    @abstractmethod
    def get_relevant_chunks(self, query_vector: list[float], top_k: int) -> list[DocumentChunk]:
        """Return the ``top_k`` chunks nearest to *query_vector*.

        Ordered by ascending cosine distance, ties broken by storage
        order. Exactly ``min(top_k, total chunks)`` rows are returned.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    def create_schema(self) -> None:
        """Create backing tables if the backend needs them.  No-op by default."""

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
