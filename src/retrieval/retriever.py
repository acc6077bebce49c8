"""Context retrieval for prompt enrichment.

Retrieval is best effort: any embedding or search failure yields an empty
result so generation can proceed without documentation context.
"""

import logging
from collections.abc import Collection

import yaml
from langchain_core.embeddings import Embeddings

from src.exceptions import ConfigurationError
from src.retrieval.documents import Document, RetrievalResult
from src.retrieval.embeddings import get_embeddings
from src.retrieval.stores import DocumentStore, InMemoryDocumentStore, SqlDocumentStore
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Appended to queries to pull platform vocabulary into the embedding
PLATFORM_VOCABULARY = {
    "n8n": "workflow nodes connections triggers actions n8n-nodes-base",
    "zapier": "zap trigger action filter formatter zapier integration",
    "make": "scenario module router aggregator iterator make integromat",
}

EXAMPLE_QUERY_LIMIT = 5
DEDUP_PREFIX_CHARS = 100


def enhance_query(query: str, platform: str) -> str:
    return f"{query} {PLATFORM_VOCABULARY.get(platform, '')}".strip()


def rank_documents(documents: list[Document]) -> list[Document]:
    """Deduplicate on the content prefix (highest score wins), then put examples first."""
    best: dict[str, Document] = {}
    for doc in documents:
        key = doc.content[:DEDUP_PREFIX_CHARS]
        current = best.get(key)
        if current is None or doc.relevance_score > current.relevance_score:
            best[key] = doc
    return sorted(
        best.values(),
        key=lambda d: (not d.is_example, -d.relevance_score),
    )


class ContextRetriever:
    """Finds platform documentation relevant to a workflow request."""

    def __init__(self, store: DocumentStore, embeddings: Embeddings):
        self.store = store
        self.embeddings = embeddings

    async def _search(self, query: str, platform: str, threshold: float, limit: int) -> list[Document]:
        embedding = await self.embeddings.aembed_query(query)
        hits = await self.store.search(embedding, platform, threshold, limit)
        return [hit.to_document(platform) for hit in hits]

    async def get_relevant_context(
        self,
        query: str,
        platform: str,
        *,
        max_documents: int = 10,
        min_relevance: float = 0.7,
        doc_types: Collection[str] | None = None,
        include_examples: bool = True,
    ) -> RetrievalResult:
        enhanced = enhance_query(query, platform)
        search_queries = [query, enhanced]

        try:
            documents = await self._search(enhanced, platform, min_relevance, max_documents)
            documents = [d for d in documents if d.relevance_score >= min_relevance]
            if doc_types:
                documents = [d for d in documents if d.doc_type in doc_types]

            if include_examples:
                examples = await self._search(
                    f"example workflow {query}", platform, min_relevance, EXAMPLE_QUERY_LIMIT
                )
                documents.extend(d for d in examples if d.is_example)
        except Exception:
            logger.warning("Context retrieval failed for %s; continuing without documentation", platform, exc_info=True)
            return RetrievalResult(search_queries=search_queries)

        ranked = rank_documents(documents)[:max_documents]
        avg = sum(d.relevance_score for d in ranked) / len(ranked) if ranked else 0.0
        logger.info("Retrieved %d documents for %s (avg relevance %.2f)", len(ranked), platform, avg)
        return RetrievalResult(documents=ranked, avg_relevance=avg, search_queries=search_queries)


def build_context_retriever(settings: Settings | None = None) -> ContextRetriever | None:
    """ContextRetriever for the configured backend, or None when retrieval is off or unusable."""
    settings = settings or get_settings()
    if not settings.rag_enabled:
        return None
    try:
        embeddings = get_embeddings(settings)
    except ConfigurationError as e:
        logger.warning("Retrieval disabled: %s", e)
        return None

    if settings.rag_backend == "memory":
        if settings.rag_docs_file is None:
            logger.warning("Retrieval disabled: FLOWFORGE_DOCS_FILE is not set for the memory backend")
            return None
        try:
            store: DocumentStore = InMemoryDocumentStore.from_yaml(settings.rag_docs_file, embeddings)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Retrieval disabled: cannot load %s: %s", settings.rag_docs_file, e)
            return None
    else:
        store = SqlDocumentStore()
    return ContextRetriever(store, embeddings)
