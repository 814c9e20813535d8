"""
Ingestion — sanitizing, chunking, and embedding document content.

This module turns raw document text into embedded passages ready to be
written to a :class:`~doc_rag.retrieval.base.DocumentStore`.
"""
