"""Completion providers and the retrying generation client.

Re-exports public API and internal symbols used by tests.
"""

from src.llm.circuit_breaker import (
    CircuitBreaker,
    _circuit_breakers,
    _get_circuit_breaker,
)
from src.llm.client import GenerationClient
from src.llm.factory import get_generation_client, get_provider, list_supported_providers
from src.llm.providers import (
    AnthropicProvider,
    ChatModelProvider,
    Completion,
    CompletionProvider,
    TokenUsage,
)

__all__ = [
    "AnthropicProvider",
    "ChatModelProvider",
    "CircuitBreaker",
    "Completion",
    "CompletionProvider",
    "GenerationClient",
    "TokenUsage",
    "_circuit_breakers",
    "_get_circuit_breaker",
    "get_generation_client",
    "get_provider",
    "list_supported_providers",
]
