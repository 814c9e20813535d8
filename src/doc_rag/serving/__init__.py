"""
Serving — FastAPI application for document management and search.

Run with ``uvicorn --factory doc_rag.serving.app:create_app``.
"""
