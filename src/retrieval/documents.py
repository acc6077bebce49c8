"""Documentation records returned by context retrieval."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocType(StrEnum):
    TRIGGER = "trigger"
    ACTION = "action"
    NODE = "node"
    EXAMPLE = "example"
    GUIDE = "guide"
    BEST_PRACTICE = "best-practice"
    SCHEMA = "schema"
    API = "api"
    GENERAL = "general"


class Document(BaseModel):
    """A platform documentation chunk with its similarity score."""

    model_config = ConfigDict(frozen=True)

    content: str
    platform: str
    doc_type: DocType = DocType.GENERAL
    title: str = ""
    relevance_score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_example(self) -> bool:
        return self.doc_type == DocType.EXAMPLE or "example" in self.content.lower()


class SearchHit(BaseModel):
    """Raw result from a DocumentStore before it is turned into a Document."""

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float

    def to_document(self, platform: str) -> Document:
        raw_type = self.metadata.get("doc_type") or self.metadata.get("docType") or DocType.GENERAL
        try:
            doc_type = DocType(raw_type)
        except ValueError:
            doc_type = DocType.GENERAL
        return Document(
            content=self.content,
            platform=self.metadata.get("platform") or platform,
            doc_type=doc_type,
            title=self.metadata.get("title") or "",
            relevance_score=self.score,
            metadata=self.metadata,
        )


class RetrievalResult(BaseModel):
    documents: list[Document] = Field(default_factory=list)
    avg_relevance: float = 0.0
    search_queries: list[str] = Field(default_factory=list)
