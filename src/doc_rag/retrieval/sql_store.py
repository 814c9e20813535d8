"""SQLAlchemy implementation of the document-store abstraction.

Schema::

    documents        (id, content, created_at, updated_at)
    document_chunks  (id, document_id → documents.id, chunk, metadata, embedding)

Similarity ordering uses ``vector_distance_cos(embedding, vector32(?))``,
the libSQL / Turso vector operator.  On plain SQLite both functions are
registered on every new DBAPI connection (see :func:`create_store_engine`),
with embeddings stored as JSON arrays.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import (
    ForeignKey,
    Integer,
    String,
    Text,
    bindparam,
    create_engine,
    delete,
    event,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from doc_rag.exceptions import StoreError, ValidationError
from doc_rag.retrieval.base import DocumentStore, clamp_page
from doc_rag.retrieval.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
    Page,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ORM models
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Declarative base for the document-store tables."""


class DocumentRecord(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # ISO-8601 strings, written verbatim from the orchestrator's timestamps.
    created_at: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[str] = mapped_column(String(64), nullable=False)


class DocumentChunkRecord(Base):
    __tablename__ = "document_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk: Mapped[str] = mapped_column(Text, nullable=False)
    # ``metadata`` is reserved on declarative classes.
    chunk_metadata: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    embedding: Mapped[str] = mapped_column(Text, nullable=False)


# ---------------------------------------------------------------------------
# SQLite vector functions
# ---------------------------------------------------------------------------


def cosine_distance(left: Sequence[float], right: Sequence[float]) -> float:
    """Return ``1 - cos(left, right)``; a zero vector is at distance 1.0."""
    if len(left) != len(right):
        raise ValueError(f"Vector dimensions differ: {len(left)} != {len(right)}")
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 1.0
    return 1.0 - dot / (left_norm * right_norm)


def _vector32(value: str) -> str:
    return json.dumps([float(v) for v in json.loads(value)])


def _vector_distance_cos(left: str, right: str) -> float:
    return cosine_distance(json.loads(left), json.loads(right))


def _register_sqlite_functions(dbapi_connection: Any, connection_record: Any) -> None:  # noqa: ARG001
    dbapi_connection.create_function("vector32", 1, _vector32, deterministic=True)
    dbapi_connection.create_function("vector_distance_cos", 2, _vector_distance_cos, deterministic=True)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine, adding the vector functions when the dialect is SQLite."""
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # Connections are shared by the thread pool serving requests.
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, echo=echo, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _register_sqlite_functions)
    return engine


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=record.id,
        content=record.content,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _timestamp(value: datetime) -> str:
    return value.isoformat()


class SqlDocumentStore(DocumentStore):
    """Relational document store backed by a SQLAlchemy engine.

    Parameters
    ----------
    engine:
        Engine created by :func:`create_store_engine` (or any engine whose
        dialect provides ``vector32`` and ``vector_distance_cos``).
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> SqlDocumentStore:
        return cls(create_store_engine(database_url, echo=echo))

    # -- DocumentStore overrides ----------------------------------------------

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            logger.error("Database error creating schema: %s", exc)
            raise StoreError("Failed to create document-store schema") from exc

    def save_document(self, document: DocumentCreate) -> int:
        try:
            with self._session_factory.begin() as session:
                record = DocumentRecord(
                    content=document.content,
                    created_at=_timestamp(document.created_at),
                    updated_at=_timestamp(document.updated_at),
                )
                session.add(record)
                session.flush()
                document_id = record.id
                self._insert_chunks(session, document_id, document.chunks)
        except SQLAlchemyError as exc:
            logger.error("Database error saving document: %s", exc)
            raise StoreError("Failed to save document") from exc

        logger.info("Saved document %d with %d chunks", document_id, len(document.chunks))
        return document_id

    def update_document(self, document: DocumentUpdate) -> bool:
        try:
            with self._session_factory.begin() as session:
                result = session.execute(
                    update(DocumentRecord)
                    .where(DocumentRecord.id == document.id)
                    .values(content=document.content, updated_at=_timestamp(document.updated_at))
                    .execution_options(synchronize_session=False)
                )
                found = result.rowcount > 0
                if found:
                    session.execute(
                        delete(DocumentChunkRecord)
                        .where(DocumentChunkRecord.document_id == document.id)
                        .execution_options(synchronize_session=False)
                    )
                    self._insert_chunks(session, document.id, document.chunks)
        except SQLAlchemyError as exc:
            logger.error("Database error updating document %d: %s", document.id, exc)
            raise StoreError(f"Failed to update document {document.id}") from exc

        if not found:
            logger.warning("Update affected no rows: document %d does not exist", document.id)
            return False
        logger.info("Replaced document %d with %d chunks", document.id, len(document.chunks))
        return True

    def delete_document(self, document_id: int) -> bool:
        try:
            with self._session_factory.begin() as session:
                existing = session.scalar(select(DocumentRecord.id).where(DocumentRecord.id == document_id))
                if existing is not None:
                    session.execute(
                        delete(DocumentChunkRecord)
                        .where(DocumentChunkRecord.document_id == document_id)
                        .execution_options(synchronize_session=False)
                    )
                    session.execute(
                        delete(DocumentRecord)
                        .where(DocumentRecord.id == document_id)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as exc:
            logger.error("Database error deleting document %d: %s", document_id, exc)
            raise StoreError(f"Failed to delete document {document_id}") from exc

        if existing is None:
            return False
        logger.info("Deleted document %d", document_id)
        return True

    def get_document_by_id(self, document_id: int) -> Document | None:
        try:
            with self._session_factory() as session:
                record = session.get(DocumentRecord, document_id)
                return _to_document(record) if record is not None else None
        except SQLAlchemyError as exc:
            logger.error("Database error fetching document %d: %s", document_id, exc)
            raise StoreError(f"Failed to fetch document {document_id}") from exc

    def list_documents(self, page: int, page_size: int) -> Page[Document]:
        current, size = clamp_page(page, page_size)
        offset = (current - 1) * size

        try:
            with self._session_factory() as session:
                total_items = session.scalar(select(func.count()).select_from(DocumentRecord)) or 0
                records = session.scalars(
                    select(DocumentRecord).order_by(DocumentRecord.id.desc()).limit(size).offset(offset)
                ).all()
                items = [_to_document(r) for r in records]
        except SQLAlchemyError as exc:
            logger.error("Database error listing documents: %s", exc)
            raise StoreError("Failed to list documents") from exc

        return Page[Document](
            items=items,
            page=current,
            page_size=size,
            total_items=total_items,
            total_pages=max(1, math.ceil(total_items / size)),
        )

    def get_relevant_chunks(self, query_vector: list[float], top_k: int) -> list[DocumentChunk]:
        if not query_vector:
            raise ValidationError("Query vector must not be empty")
        if top_k <= 0:
            return []

        distance = func.vector_distance_cos(
            DocumentChunkRecord.embedding, func.vector32(json.dumps(list(query_vector)))
        )
        stmt = (
            select(
                DocumentChunkRecord.id,
                DocumentChunkRecord.document_id,
                DocumentChunkRecord.chunk,
                DocumentChunkRecord.chunk_metadata,
            )
            .order_by(distance, DocumentChunkRecord.id)
            .limit(top_k)
        )

        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            logger.error("Database error fetching relevant chunks: %s", exc)
            raise StoreError("Failed to fetch relevant chunks") from exc

        return [
            DocumentChunk(id=row.id, document_id=row.document_id, chunk=row.chunk, metadata=row.chunk_metadata)
            for row in rows
        ]

    def health_check(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Document-store health-check failed", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _insert_chunks(session: Session, document_id: int, chunks: Sequence[ChunkCreate]) -> None:
        if not chunks:
            return
        # One executemany; the bound JSON array is converted by vector32 in SQL.
        stmt = insert(DocumentChunkRecord.__table__).values(
            embedding=func.vector32(bindparam("embedding_json"))
        )
        session.execute(
            stmt,
            [
                {
                    "document_id": document_id,
                    "chunk": item.chunk,
                    "metadata": item.metadata,
                    "embedding_json": json.dumps(item.embedding),
                }
                for item in chunks
            ],
        )
