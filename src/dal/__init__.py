"""Repositories over the FlowForge tables."""

from src.dal.llm_usage import LLMUsageRepository
from src.dal.workflow_cache import WorkflowCacheRepository

__all__ = [
    "LLMUsageRepository",
    "WorkflowCacheRepository",
]
