"""Embedding model factory."""

from typing import Any

from langchain_core.embeddings import Embeddings

from src.exceptions import ConfigurationError
from src.settings import Settings, get_settings


def get_embeddings(settings: Settings | None = None) -> Embeddings:
    """OpenAI embeddings for the configured model.

    Raises:
        ConfigurationError: If no OpenAI API key is configured
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key.get_secret_value()
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY must be configured for embeddings")

    from langchain_openai import OpenAIEmbeddings

    kwargs: dict[str, Any] = {"model": settings.embedding_model, "api_key": api_key}
    if settings.llm_base_url:
        kwargs["base_url"] = settings.llm_base_url
    return OpenAIEmbeddings(**kwargs)
