"""Text chunking strategies.

Both chunkers delegate to LangChain's ``RecursiveCharacterTextSplitter``:
the text is cut at the coarsest separator that keeps passages within
``chunk_size`` (paragraph, line, sentence, word, then raw characters), and
consecutive passages share up to ``chunk_overlap`` characters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from langchain_text_splitters import Language, RecursiveCharacterTextSplitter
from pydantic import BaseModel, Field

from doc_rag.exceptions import ValidationError

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


class Chunk(BaseModel):
    """A passage produced by a :class:`Chunker`.

    ``metadata`` carries provenance (``chunk_index``, ``chunk_count``).
    """

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkerOptions(BaseModel):
    """Size policy for a chunking call."""

    chunk_size: int = 1000
    chunk_overlap: int = 200

    def validate_policy(self) -> None:
        if self.chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValidationError(f"chunk_overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValidationError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )


class Chunker(ABC):
    """Splits text into overlapping passages.

    Parameters
    ----------
    default_options:
        Policy used when :meth:`chunk` is called without options.
    """

    def __init__(self, default_options: ChunkerOptions | None = None) -> None:
        self.default_options = default_options or ChunkerOptions()

    def chunk(self, text: str, options: ChunkerOptions | None = None) -> list[Chunk]:
        """Split *text* into passages; empty input yields an empty list.

        Raises
        ------
        ValidationError
            If the size / overlap policy is invalid.
        """
        options = options or self.default_options
        options.validate_policy()
        if not text:
            return []

        pieces = self._splitter(options).split_text(text)
        return [
            Chunk(content=piece, metadata={"chunk_index": i, "chunk_count": len(pieces)})
            for i, piece in enumerate(pieces)
        ]

    @abstractmethod
    def _splitter(self, options: ChunkerOptions) -> RecursiveCharacterTextSplitter:
        """Return the splitter configured for *options*."""
        ...


class RecursiveChunker(Chunker):
    """Plain-text chunker: paragraph → line → sentence → word → character."""

    def __init__(
        self,
        default_options: ChunkerOptions | None = None,
        *,
        separators: list[str] | None = None,
    ) -> None:
        super().__init__(default_options)
        self.separators = separators or list(DEFAULT_SEPARATORS)

    def _splitter(self, options: ChunkerOptions) -> RecursiveCharacterTextSplitter:
        return RecursiveCharacterTextSplitter(
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
            length_function=len,
            separators=self.separators,
        )


class HtmlChunker(Chunker):
    """Markup-aware chunker that prefers block-level HTML tags as boundaries."""

    def _splitter(self, options: ChunkerOptions) -> RecursiveCharacterTextSplitter:
        return RecursiveCharacterTextSplitter.from_language(
            Language.HTML,
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
        )
