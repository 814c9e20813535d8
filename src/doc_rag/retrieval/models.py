"""Domain models for documents, chunks and paginated listings.

Python code uses snake_case attributes; every model serializes with
camelCase aliases (``createdAt``, ``documentId``, ``pageSize`` …) so the
HTTP layer can return them unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Document(_CamelModel):
    """A stored document without its chunk / embedding payload.

    Attributes
    ----------
    id:
        Store-assigned identifier, stable for the document's lifetime.
    content:
        Sanitized HTML / text content.
    created_at, updated_at:
        Write timestamps chosen by the orchestrator, not the store.
    """

    id: int
    content: str
    created_at: datetime
    updated_at: datetime


class DocumentChunk(_CamelModel):
    """A retrieved passage and a back-reference to its document."""

    id: int
    document_id: int
    chunk: str
    metadata: str | None = None


class ChunkCreate(_CamelModel):
    """A passage ready to be persisted together with its embedding."""

    chunk: str
    metadata: str | None = None
    embedding: list[float]


class DocumentCreate(_CamelModel):
    """Payload for :meth:`DocumentStore.save_document`."""

    content: str
    created_at: datetime
    updated_at: datetime
    chunks: list[ChunkCreate] = Field(default_factory=list)


class DocumentUpdate(_CamelModel):
    """Payload for :meth:`DocumentStore.update_document`."""

    id: int
    content: str
    updated_at: datetime
    chunks: list[ChunkCreate] = Field(default_factory=list)


class Page(_CamelModel, Generic[T]):
    """One page of a listing plus the totals needed to paginate."""

    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int
