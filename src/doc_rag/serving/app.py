"""FastAPI application exposing document management and passage search."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from doc_rag.config import Settings
from doc_rag.exceptions import (
    EmbeddingFailure,
    NotFoundError,
    RagError,
    RerankFailure,
    StoreError,
    ValidationError,
)
from doc_rag.retrieval.models import Document, DocumentChunk, Page
from doc_rag.service import RagService

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[RagError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (EmbeddingFailure, status.HTTP_502_BAD_GATEWAY),
    (RerankFailure, status.HTTP_502_BAD_GATEWAY),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]

_basic = HTTPBasic(auto_error=False)


class _Unauthorized(Exception):
    """Raised by the auth dependency; rendered as a 401 with a Basic challenge."""


# ── Request / Response schemas ────────────────────────────────────────
class DocumentRequest(BaseModel):
    """Body of document create / update requests."""

    content: str


class MessageResponse(BaseModel):
    message: str


class CreatedResponse(BaseModel):
    message: str
    id: int


# ── Dependencies ──────────────────────────────────────────────────────
def get_rag_service(request: Request) -> RagService:
    return request.app.state.rag_service


def require_internal_auth(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(_basic),
) -> None:
    """Enforce HTTP Basic auth when credentials are configured."""
    settings: Settings = request.app.state.settings
    if not (settings.basic_auth_username and settings.basic_auth_password):
        return
    if credentials is not None:
        user_ok = secrets.compare_digest(credentials.username, settings.basic_auth_username)
        pass_ok = secrets.compare_digest(credentials.password, settings.basic_auth_password)
        if user_ok and pass_ok:
            return
    raise _Unauthorized()


def _to_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


# ── Routes ────────────────────────────────────────────────────────────
public = APIRouter(prefix="/api/public")
internal = APIRouter(prefix="/api/internal", dependencies=[Depends(require_internal_auth)])


@public.get("/health")
def health(service: RagService = Depends(get_rag_service)) -> JSONResponse:
    """Liveness probe, including document-store reachability."""
    if service.store.health_check():
        return JSONResponse({"status": "ok"})
    return JSONResponse({"status": "unavailable"}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


@internal.get("/search/document", response_model=list[DocumentChunk])
def search_documents(
    q: str | None = None,
    service: RagService = Depends(get_rag_service),
) -> list[DocumentChunk]:
    """Return the passages most relevant to ``q``."""
    if not q:
        raise ValidationError("query parameter 'q' is required")
    return service.get_relevant_chunks(q)


@internal.post("/document", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_document(
    body: DocumentRequest,
    service: RagService = Depends(get_rag_service),
) -> CreatedResponse:
    document_id = service.insert_document(body.content)
    return CreatedResponse(message="success", id=document_id)


@internal.get("/document", response_model=Page[Document])
def list_documents(
    page: str | None = None,
    page_size: str | None = Query(default=None, alias="pageSize"),
    service: RagService = Depends(get_rag_service),
) -> Page[Document]:
    return service.list_documents(_to_int(page, 1), _to_int(page_size, 20))


@internal.get("/document/{document_id}", response_model=Document)
def get_document(document_id: int, service: RagService = Depends(get_rag_service)) -> Document:
    document = service.get_document_by_id(document_id)
    if document is None:
        raise NotFoundError("document not found")
    return document


@internal.put("/document/{document_id}", response_model=MessageResponse)
def update_document(
    document_id: int,
    body: DocumentRequest,
    service: RagService = Depends(get_rag_service),
) -> MessageResponse:
    service.update_document(document_id, body.content)
    return MessageResponse(message="document updated successfully")


@internal.delete("/document/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(document_id: int, service: RagService = Depends(get_rag_service)) -> Response:
    if not service.delete_document(document_id):
        raise NotFoundError("document not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Error mapping ─────────────────────────────────────────────────────
def _rag_error_handler(request: Request, exc: RagError) -> JSONResponse:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse({"message": str(exc)}, status_code=code)


def _unauthorized_handler(request: Request, exc: _Unauthorized) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(
        {"message": "unauthorized"},
        status_code=status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Basic"},
    )


def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: ARG001
    """Render malformed path, query or body input as a 400 like :class:`ValidationError`."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = tuple(first.get("loc", ()))
    if first.get("type") == "json_invalid":
        message = "invalid json"
    elif loc[:2] == ("path", "document_id"):
        message = "invalid document id"
    else:
        field = ".".join(str(part) for part in loc[1:]) or "request"
        message = f"invalid {field}: {first.get('msg', 'malformed input')}"
    return JSONResponse({"message": message}, status_code=status.HTTP_400_BAD_REQUEST)


# ── Middleware ────────────────────────────────────────────────────────
async def _log_requests(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms
    )
    return response


def create_app(service: RagService | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the API around *service*.

    When *service* is omitted it is built from *settings* (or from the
    environment when *settings* is omitted too).
    """
    settings = settings or Settings()
    if service is None:
        from doc_rag.container import build_rag_service

        service = build_rag_service(settings)

    app = FastAPI(
        title="doc-rag API",
        version="0.1.0",
        description="Document ingestion and passage retrieval for RAG.",
    )
    app.state.settings = settings
    app.state.rag_service = service
    app.add_exception_handler(RagError, _rag_error_handler)
    app.add_exception_handler(_Unauthorized, _unauthorized_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(_log_requests)
    app.include_router(public)
    app.include_router(internal)
    return app
