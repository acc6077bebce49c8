"""Prompt composition for workflow generation."""

from src.prompts.composer import (
    FIX_INSTRUCTIONS,
    PromptOptions,
    compose,
    compose_focused,
    compose_refinement,
    compose_system_prompt,
    extract_best_practices,
    group_documents,
)
from src.prompts.loader import load_prompt

__all__ = [
    "FIX_INSTRUCTIONS",
    "PromptOptions",
    "compose",
    "compose_focused",
    "compose_refinement",
    "compose_system_prompt",
    "extract_best_practices",
    "group_documents",
    "load_prompt",
]
