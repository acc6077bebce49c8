"""Document stores for similarity search.

``SqlDocumentStore`` delegates to the ``search_similar_docs`` Postgres
function (pgvector). ``InMemoryDocumentStore`` keeps documents loaded from a
YAML file and scores them with cosine similarity.
"""

import json
import logging
import math
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import yaml
from langchain_core.embeddings import Embeddings
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import RetrievalUnavailable
from src.retrieval.documents import DocType, Document, SearchHit

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

SEARCH_SQL = text(
    "SELECT content, metadata, doc_type, title, platform, similarity "
    "FROM search_similar_docs(CAST(:query_embedding AS vector), :match_platform, "
    ":match_threshold, :match_count)"
)

INSERT_SQL = text(
    "INSERT INTO platform_docs (id, platform, doc_type, title, content, doc_metadata, embedding) "
    "VALUES (:id, :platform, :doc_type, :title, :content, CAST(:doc_metadata AS jsonb), "
    "CAST(:embedding AS vector))"
)


class DocumentStore(Protocol):
    async def search(
        self, embedding: Sequence[float], platform: str, threshold: float, limit: int
    ) -> list[SearchHit]: ...


def _vector_literal(embedding: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def load_documents(path: Path) -> list[Document]:
    """Load documents from a YAML file.

    The file holds a ``documents`` list (or is a bare list) of mappings with
    ``content``, ``platform`` and optional ``doc_type``, ``title`` and
    ``metadata``. Entries without content are skipped.
    """
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or []
    entries = raw.get("documents", []) if isinstance(raw, dict) else raw

    documents = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("content"):
            continue
        try:
            doc_type = DocType(entry.get("doc_type", "general"))
        except ValueError:
            doc_type = DocType.GENERAL
        documents.append(
            Document(
                content=str(entry["content"]),
                platform=str(entry.get("platform", "n8n")),
                doc_type=doc_type,
                title=str(entry.get("title", "")),
                metadata=entry.get("metadata") or {},
            )
        )
    logger.info("Loaded %d documents from %s", len(documents), path)
    return documents


class InMemoryDocumentStore:
    """Documents embedded lazily on first search."""

    def __init__(self, embeddings: Embeddings, documents: Sequence[Document] = ()):
        self.embeddings = embeddings
        self.documents = list(documents)
        self._vectors: list[list[float]] | None = None

    @classmethod
    def from_yaml(cls, path: Path, embeddings: Embeddings) -> "InMemoryDocumentStore":
        return cls(embeddings, load_documents(path))

    async def _ensure_vectors(self) -> list[list[float]]:
        if self._vectors is None:
            self._vectors = await self.embeddings.aembed_documents([d.content for d in self.documents])
        return self._vectors

    async def search(
        self, embedding: Sequence[float], platform: str, threshold: float, limit: int
    ) -> list[SearchHit]:
        vectors = await self._ensure_vectors()
        scored = []
        for doc, vector in zip(self.documents, vectors, strict=True):
            if doc.platform != platform:
                continue
            score = cosine_similarity(embedding, vector)
            if score >= threshold:
                metadata = {**doc.metadata, "doc_type": doc.doc_type.value, "title": doc.title, "platform": doc.platform}
                scored.append(SearchHit(content=doc.content, metadata=metadata, score=score))
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:limit]


class SqlDocumentStore:
    """Vector search through the ``search_similar_docs`` database function."""

    def __init__(self, session_factory: SessionFactory | None = None):
        if session_factory is None:
            from src.storage import get_session

            session_factory = get_session
        self._session_factory = session_factory

    async def search(
        self, embedding: Sequence[float], platform: str, threshold: float, limit: int
    ) -> list[SearchHit]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    SEARCH_SQL,
                    {
                        "query_embedding": _vector_literal(embedding),
                        "match_platform": platform,
                        "match_threshold": threshold,
                        "match_count": limit,
                    },
                )
                rows = result.mappings().all()
        except (SQLAlchemyError, OSError) as e:
            raise RetrievalUnavailable(f"Document search failed: {e}") from e

        return [
            SearchHit(
                content=row["content"],
                metadata={
                    **(row["metadata"] or {}),
                    "doc_type": row["doc_type"],
                    "title": row["title"],
                    "platform": row["platform"],
                },
                score=float(row["similarity"]),
            )
            for row in rows
        ]

    async def add_documents(self, documents: Sequence[Document], embeddings: Embeddings) -> int:
        """Embed and insert documents; returns the number written."""
        if not documents:
            return 0
        vectors = await embeddings.aembed_documents([d.content for d in documents])
        params: list[dict[str, Any]] = [
            {
                "id": str(uuid4()),
                "platform": doc.platform,
                "doc_type": doc.doc_type.value,
                "title": doc.title,
                "content": doc.content,
                "doc_metadata": json.dumps(doc.metadata),
                "embedding": _vector_literal(vector),
            }
            for doc, vector in zip(documents, vectors, strict=True)
        ]
        try:
            async with self._session_factory() as session:
                await session.execute(INSERT_SQL, params)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise RetrievalUnavailable(f"Document indexing failed: {e}") from e
        logger.info("Indexed %d documents", len(params))
        return len(params)
