"""Database entity models."""

from src.storage.entities.llm_usage import LLMUsage
from src.storage.entities.rag_document import RagDocument
from src.storage.entities.workflow_cache import WorkflowCache

__all__ = [
    "LLMUsage",
    "RagDocument",
    "WorkflowCache",
]
