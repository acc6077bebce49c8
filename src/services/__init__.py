"""Application services."""

from src.services.generator import GenerationResult, WorkflowGenerator, create_workflow_generator

__all__ = ["GenerationResult", "WorkflowGenerator", "create_workflow_generator"]
