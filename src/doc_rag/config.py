"""Deployment configuration loaded from environment / ``.env``.

Build one :class:`Settings` at process start and hand it to
:func:`doc_rag.container.build_rag_service`; components receive plain
values through their constructors and never read settings again.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings, populated from ``DOC_RAG_*`` env vars or a .env file."""

    # Relational store
    database_url: str = Field(
        default="sqlite:///doc_rag.db",
        description=(
            "SQLAlchemy URL of the document store. SQLite gets the vector "
            "functions registered on connect; other dialects must provide "
            "'vector32' and 'vector_distance_cos' natively (e.g. libSQL / Turso)."
        ),
    )
    database_echo: bool = False

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = Field(default=384, gt=0, description="Dimension shared by every stored vector")
    embedding_batch_size: int = Field(default=64, gt=0)
    embedding_max_workers: int = Field(default=4, gt=0)
    openai_api_key: str = Field(default="", description="OpenAI API key, used by the 'openai' provider only")
    openai_base_url: str = ""

    # Chunking
    chunker: Literal["recursive", "html"] = "recursive"
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)

    # Retrieval
    reranker: Literal["cross-encoder", "none"] = "cross-encoder"
    reranker_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    retrieval_top_k: int = Field(default=5, gt=0, description="Number of passages returned per query")
    rerank_overfetch: int = Field(
        default=4,
        ge=1,
        description="Candidates fetched per returned passage when a reranker is configured",
    )

    # Internal API auth (disabled when either value is empty)
    basic_auth_username: str = ""
    basic_auth_password: str = ""

    # HTTP layer
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by CORS; a JSON list in the environment",
    )

    model_config = SettingsConfigDict(
        env_prefix="DOC_RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_chunking(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self
