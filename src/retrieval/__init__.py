"""Documentation retrieval for prompt context."""

from src.retrieval.documents import DocType, Document, RetrievalResult, SearchHit
from src.retrieval.embeddings import get_embeddings
from src.retrieval.retriever import (
    PLATFORM_VOCABULARY,
    ContextRetriever,
    build_context_retriever,
    enhance_query,
    rank_documents,
)
from src.retrieval.stores import (
    DocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
    cosine_similarity,
    load_documents,
)

__all__ = [
    "PLATFORM_VOCABULARY",
    "ContextRetriever",
    "DocType",
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "RetrievalResult",
    "SearchHit",
    "SqlDocumentStore",
    "build_context_retriever",
    "cosine_similarity",
    "enhance_query",
    "get_embeddings",
    "load_documents",
    "rank_documents",
]
