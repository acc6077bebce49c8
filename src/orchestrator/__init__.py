"""Validation and repair orchestration."""

from src.orchestrator.loop import (
    FIXABLE_WARNING_KINDS,
    ISSUE_HINTS,
    REPAIRABLE_PLATFORMS,
    GenerationAttempt,
    RegenerationUsage,
    ValidationOrchestrator,
    ValidationOutcome,
)
from src.orchestrator.validation_cache import ValidationCache, workflow_key

__all__ = [
    "FIXABLE_WARNING_KINDS",
    "ISSUE_HINTS",
    "REPAIRABLE_PLATFORMS",
    "GenerationAttempt",
    "RegenerationUsage",
    "ValidationCache",
    "ValidationOrchestrator",
    "ValidationOutcome",
    "workflow_key",
]
