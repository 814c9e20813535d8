"""Error taxonomy shared by every layer of the retrieval core."""


class RagError(Exception):
    """Base exception for all doc-rag errors."""


class ValidationError(RagError, ValueError):
    """Raised when input content, ids or options are empty or malformed."""


class NotFoundError(RagError, LookupError):
    """Raised when a referenced document id does not exist."""


class EmbeddingFailure(RagError):
    """Raised when the embedding backend errors or returns malformed vectors."""


class RerankFailure(RagError):
    """Raised when the reranking backend errors or returns malformed indices."""


class StoreError(RagError):
    """Raised after a failed store operation has been rolled back."""
