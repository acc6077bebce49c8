"""Completion provider factory.

Supports two backends:
- anthropic (default): Messages API called directly over httpx
- openai: ChatOpenAI via langchain-openai (any OpenAI-compatible API with LLM_BASE_URL)

Environment variables:
- LLM_PROVIDER: anthropic (default), openai
- LLM_MODEL / OPENAI_MODEL: Model names per provider
- ANTHROPIC_API_KEY (or CLAUDE_API_KEY), OPENAI_API_KEY (or LLM_API_KEY)
- LLM_BASE_URL: Custom base URL for OpenAI-compatible APIs
"""

from typing import Any

from src.exceptions import ConfigurationError
from src.llm.client import GenerationClient
from src.llm.providers import AnthropicProvider, ChatModelProvider, CompletionProvider
from src.settings import Settings, get_settings

SUPPORTED_PROVIDERS = ("anthropic", "openai")


def get_provider(provider: str | None = None, settings: Settings | None = None, **kwargs: Any) -> CompletionProvider:
    """Build a completion provider.

    Raises:
        ConfigurationError: unknown provider or missing API key
    """
    settings = settings or get_settings()
    provider = provider or settings.llm_provider

    if provider == "anthropic":
        api_key = settings.anthropic_api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required when using the anthropic provider")
        return AnthropicProvider(
            api_key,
            base_url=settings.anthropic_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        api_key = settings.openai_api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required when using the openai provider")

        llm_kwargs: dict[str, Any] = {
            "model": kwargs.pop("model", settings.openai_model),
            "temperature": kwargs.pop("temperature", settings.llm_temperature),
            "max_tokens": kwargs.pop("max_tokens", settings.llm_max_tokens),
            "timeout": settings.llm_timeout_seconds,
            # GenerationClient owns the retry policy
            "max_retries": 0,
            "api_key": api_key,
            **kwargs,
        }
        if settings.llm_base_url:
            llm_kwargs["base_url"] = settings.llm_base_url
        return ChatModelProvider(ChatOpenAI(**llm_kwargs), name="openai")

    raise ConfigurationError(
        f"Unknown provider '{provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


def get_generation_client(provider: str | None = None, **kwargs: Any) -> GenerationClient:
    """Build a GenerationClient for the configured (or given) provider."""
    settings = get_settings()
    provider = provider or settings.llm_provider
    model = settings.llm_model if provider == "anthropic" else settings.openai_model
    return GenerationClient(get_provider(provider, settings), model=model, **kwargs)


def list_supported_providers() -> list[str]:
    """List supported provider names."""
    return list(SUPPORTED_PROVIDERS)
